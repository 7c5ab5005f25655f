"""Batch recomputation of stored result scores.

Every stored result is re-graded with :func:`score_attempt` against the
current definition of its exam. Results whose score fields disagree are
corrected in place; answers, student and submission time are never touched.
Running the repair again over repaired data changes nothing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging

from cbt_engine.constants.engine_constants import DEFAULT_REPAIR_WORKERS
from cbt_engine.core.models import Exam, Result, ScoredOutcome
from cbt_engine.core.normalization import normalize_exam
from cbt_engine.core.scoring import score_attempt

logger = logging.getLogger(__name__)

ExamResolver = Callable[[str], Exam | None]


class RepairStatus(Enum):
    FIXED = "fixed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass(slots=True)
class RepairReport:
    """Outcome of one repair run."""

    processed: int = 0
    fixed: int = 0
    skipped: int = 0
    dry_run: bool = False
    details: list[str] = field(default_factory=list)

    @property
    def unchanged(self) -> int:
        return self.processed - self.fixed - self.skipped

    def record_skip(self, line: str) -> None:
        """Count a record that could not be processed at all."""
        self.processed += 1
        self.skipped += 1
        self.details.append(line)

    def summary(self) -> str:
        verb = "Would fix" if self.dry_run else "Fixed"
        return f"{verb} {self.fixed} out of {self.processed} results ({self.skipped} skipped)"


def repair_results(
    results: Iterable[Result],
    resolve_exam: ExamResolver,
    *,
    exam_id: str | None = None,
    dry_run: bool = False,
    max_workers: int = DEFAULT_REPAIR_WORKERS,
    now: Callable[[], datetime] | None = None,
) -> RepairReport:
    """Recompute and, unless ``dry_run``, correct the score fields of ``results``.

    ``resolve_exam`` may return ``None`` or raise any :class:`LookupError`
    (:class:`ExamNotFoundError`, ``KeyError``) for unknown exams; those results
    are skipped. When ``exam_id`` is given, only results for that exam are
    processed.
    """
    selected = [r for r in results if exam_id is None or r.exam_id == exam_id]
    recalculated_at = (now or _utc_now)()

    def process(result: Result) -> tuple[RepairStatus, str]:
        return _repair_one(result, resolve_exam, dry_run, recalculated_at)

    if max_workers > 1 and len(selected) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(process, selected))
    else:
        outcomes = [process(result) for result in selected]

    report = RepairReport(dry_run=dry_run)
    for status, line in outcomes:
        report.processed += 1
        if status is RepairStatus.FIXED:
            report.fixed += 1
        elif status is RepairStatus.SKIPPED:
            report.skipped += 1
        report.details.append(line)

    logger.info(report.summary())
    return report


def _repair_one(
    result: Result,
    resolve_exam: ExamResolver,
    dry_run: bool,
    recalculated_at: datetime,
) -> tuple[RepairStatus, str]:
    label = f'"{result.exam_title}" - {result.student_name}'

    try:
        exam = resolve_exam(result.exam_id)
    except LookupError:
        exam = None
    if exam is None:
        logger.warning("Skipping result of %s for exam %s: exam not found", result.student_id, result.exam_id)
        return RepairStatus.SKIPPED, f"Skipped: {label} - exam not found"

    prepared = normalize_exam(exam)
    if not prepared.questions:
        logger.warning("Skipping result of %s for exam %s: no valid questions", result.student_id, result.exam_id)
        return RepairStatus.SKIPPED, f"Skipped: {label} - exam has no valid questions"

    stored = result.outcome()
    recomputed = score_attempt(prepared, result.answers)
    if recomputed == stored:
        return RepairStatus.UNCHANGED, f"OK: {label} - score was correct"

    line = f"Fixed: {label} - {_describe(stored)} -> {_describe(recomputed)}"
    if not dry_run:
        result.apply_outcome(recomputed, recalculated_at=recalculated_at)
        logger.info("Recalculated result of %s for exam %s", result.student_id, result.exam_id)
    return RepairStatus.FIXED, line


def _describe(outcome: ScoredOutcome) -> str:
    return (
        f"{outcome.correct_answers}/{outcome.total_questions} "
        f"({_number(outcome.total_score)}/{_number(outcome.max_score)} pts)"
    )


def _number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(value)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
