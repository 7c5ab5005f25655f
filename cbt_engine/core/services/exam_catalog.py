"""Service holding the published exams that sessions and repairs look up."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from threading import Lock

from cbt_engine.core.errors import ExamNotFoundError, InvalidExamError
from cbt_engine.core.models import Exam
from cbt_engine.core.normalization import normalize_exam

logger = logging.getLogger(__name__)


class ExamCatalog:
    """In-memory source of truth for exams, keyed by exam id."""

    def __init__(self, exams: Iterable[Exam] = ()) -> None:
        self._lock = Lock()
        self._exams: dict[str, Exam] = {}
        for exam in exams:
            self.add_exam(exam)

    def load_exams(self, exams: Iterable[Exam]) -> None:
        """Replace the catalog contents."""
        prepared = [self._prepare_exam(exam) for exam in exams]
        with self._lock:
            self._exams = {exam.id: exam for exam in prepared}

    def add_exam(self, exam: Exam) -> None:
        prepared = self._prepare_exam(exam)
        with self._lock:
            if prepared.id in self._exams:
                logger.info("Replacing exam %s in catalog", prepared.id)
            self._exams[prepared.id] = prepared

    def remove_exam(self, exam_id: str) -> None:
        with self._lock:
            if self._exams.pop(exam_id, None) is None:
                raise ExamNotFoundError(exam_id)

    def get_exam(self, exam_id: str) -> Exam:
        with self._lock:
            exam = self._exams.get(exam_id)
        if exam is None:
            raise ExamNotFoundError(exam_id)
        return exam

    def find_exam(self, exam_id: str) -> Exam | None:
        with self._lock:
            return self._exams.get(exam_id)

    def exam_ids(self) -> list[str]:
        with self._lock:
            return list(self._exams)

    def __len__(self) -> int:
        with self._lock:
            return len(self._exams)

    @staticmethod
    def _prepare_exam(exam: Exam) -> Exam:
        if not exam.id:
            raise InvalidExamError("Exam id must not be empty.")
        prepared = normalize_exam(exam)
        dropped = len(exam.questions) - len(prepared.questions)
        if dropped:
            logger.warning("Exam %s: dropped %d malformed question(s)", exam.id, dropped)
        return prepared
