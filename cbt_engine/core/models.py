"""Domain models for the exam engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cbt_engine.constants.engine_constants import DEFAULT_QUESTION_POINTS


@dataclass(slots=True, frozen=True)
class Question:
    """Multiple-choice question as published in an exam."""

    id: str
    text: str
    options: tuple[str, ...]
    correct_option_index: int | None = None
    points: float = DEFAULT_QUESTION_POINTS


@dataclass(slots=True, frozen=True)
class Exam:
    """Published exam; question order is presentation order."""

    id: str
    title: str
    duration_seconds: int
    questions: tuple[Question, ...] = ()

    def question_ids(self) -> list[str]:
        return [question.id for question in self.questions]


@dataclass(slots=True, frozen=True)
class ScoredOutcome:
    """Output of the scoring function for one attempt."""

    correct_answers: int
    total_score: float
    max_score: float
    total_questions: int


@dataclass(slots=True)
class Result:
    """Graded record of one completed attempt.

    Only the four score fields are ever rewritten after creation, and only
    through :meth:`apply_outcome`. ``answers``, ``exam_id``, ``student_id``
    and ``submitted_at`` are history.
    """

    exam_id: str
    student_id: str
    student_name: str
    exam_title: str
    total_questions: int
    correct_answers: int
    total_score: float
    max_score: float
    answers: dict[str, Any]
    submitted_at: datetime
    time_spent_seconds: int
    recalculated_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def percentage(self) -> int:
        if not self.max_score:
            return 0
        return round(self.total_score / self.max_score * 100)

    def outcome(self) -> ScoredOutcome:
        """Return the stored score fields as an outcome for comparison."""
        return ScoredOutcome(
            correct_answers=self.correct_answers,
            total_score=self.total_score,
            max_score=self.max_score,
            total_questions=self.total_questions,
        )

    def apply_outcome(self, outcome: ScoredOutcome, recalculated_at: datetime | None = None) -> None:
        self.correct_answers = outcome.correct_answers
        self.total_score = outcome.total_score
        self.max_score = outcome.max_score
        self.total_questions = outcome.total_questions
        if recalculated_at is not None:
            self.recalculated_at = recalculated_at
