"""Scoring of a single attempt.

This is the only place correctness and points are decided. Live sessions and
the batch repair job both call :func:`score_attempt`, so a stored result can
always be re-derived from its exam and answers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cbt_engine.core.models import Exam, ScoredOutcome
from cbt_engine.core.normalization import normalize_answers, normalize_exam


def score_attempt(exam: Exam, answers: Mapping[Any, Any] | None) -> ScoredOutcome:
    """Grade ``answers`` against ``exam``.

    Malformed questions are ignored entirely: they add nothing to
    ``max_score`` and are not counted in ``total_questions``. Neither input is
    mutated.
    """
    prepared_exam = normalize_exam(exam)
    selected = normalize_answers(answers)

    correct_answers = 0
    total_score: int | float = 0
    max_score: int | float = 0
    for question in prepared_exam.questions:
        max_score += question.points
        if selected.get(question.id) == question.correct_option_index:
            correct_answers += 1
            total_score += question.points

    return ScoredOutcome(
        correct_answers=correct_answers,
        total_score=total_score,
        max_score=max_score,
        total_questions=len(prepared_exam.questions),
    )
