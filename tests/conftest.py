from __future__ import annotations

from datetime import datetime, timezone

import pytest

from cbt_engine.core.models import Exam, Question, Result

SUBMITTED_AT = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
REPAIRED_AT = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def build_exam(exam_id: str = "exam-1", duration_seconds: int = 5) -> Exam:
    return Exam(
        id=exam_id,
        title="General Knowledge",
        duration_seconds=duration_seconds,
        questions=(
            Question(id="q1", text="Capital of Nigeria?", options=("Lagos", "Abuja", "Kano"), correct_option_index=1, points=1),
            Question(id="q2", text="2 + 2 = ?", options=("4", "5", "22"), correct_option_index=0, points=2),
            Question(id="q3", text="Largest planet?", options=("Mars", "Earth", "Jupiter"), correct_option_index=2, points=1),
        ),
    )


def build_result(**overrides) -> Result:
    values = dict(
        exam_id="exam-1",
        student_id="stu-1",
        student_name="Ada Obi",
        exam_title="General Knowledge",
        total_questions=3,
        correct_answers=2,
        total_score=3,
        max_score=4,
        answers={"q1": 1, "q2": 0, "q3": 1},
        submitted_at=SUBMITTED_AT,
        time_spent_seconds=120,
    )
    values.update(overrides)
    return Result(**values)


@pytest.fixture
def sample_exam() -> Exam:
    return build_exam()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
