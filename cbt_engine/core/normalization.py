"""Normalization of questions, exams and answer maps.

Stored data reaches the engine from several generations of clients, so
option indexes and points may arrive as numbers, numeric strings or junk.
Everything is coerced here, once, before presentation or scoring.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
import math
from typing import Any

from cbt_engine.constants.engine_constants import DEFAULT_QUESTION_POINTS, MIN_OPTION_COUNT
from cbt_engine.core.models import Exam, Question

logger = logging.getLogger(__name__)


def coerce_option_index(value: Any) -> int | None:
    """Return ``value`` as an integer option index, or ``None`` if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return None
        if math.isfinite(parsed) and parsed.is_integer():
            return int(parsed)
    return None


def coerce_points(value: Any) -> int | float:
    """Return a positive point weight, falling back to the default weight."""
    if isinstance(value, bool):
        return DEFAULT_QUESTION_POINTS
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_QUESTION_POINTS
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        return DEFAULT_QUESTION_POINTS
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def normalize_answers(answers: Mapping[Any, Any] | None) -> dict[str, int]:
    """Coerce an answer map to ``{question_id: option_index}``.

    Values that cannot be coerced are dropped, which makes the question
    unanswered.
    """
    normalized: dict[str, int] = {}
    if not answers:
        return normalized
    for question_id, raw_value in answers.items():
        option_index = coerce_option_index(raw_value)
        if option_index is None:
            if raw_value is not None:
                logger.debug("Malformed answer %r for question %s treated as unanswered", raw_value, question_id)
            continue
        normalized[str(question_id)] = option_index
    return normalized


def normalize_question(question: Question) -> Question | None:
    """Return a cleaned copy of ``question``, or ``None`` if it is malformed."""
    question_id = str(question.id).strip() if question.id is not None else ""
    text = question.text.strip() if isinstance(question.text, str) else ""
    if not question_id or not text:
        return None

    raw_options = question.options if isinstance(question.options, (list, tuple)) else ()
    options = tuple(str(option) for option in raw_options if option is not None)
    if len(options) < MIN_OPTION_COUNT:
        return None

    correct_index = coerce_option_index(question.correct_option_index)
    if correct_index is None or not 0 <= correct_index < len(options):
        return None

    return Question(
        id=question_id,
        text=text,
        options=options,
        correct_option_index=correct_index,
        points=coerce_points(question.points),
    )


def is_well_formed(question: Question) -> bool:
    return normalize_question(question) is not None


def normalize_exam(exam: Exam) -> Exam:
    """Return ``exam`` with only its well-formed questions, in original order."""
    questions: list[Question] = []
    seen_ids: set[str] = set()
    for question in exam.questions:
        prepared = normalize_question(question)
        if prepared is None:
            logger.debug("Dropping malformed question %r from exam %s", question.id, exam.id)
            continue
        if prepared.id in seen_ids:
            logger.debug("Dropping duplicate question id %s from exam %s", prepared.id, exam.id)
            continue
        seen_ids.add(prepared.id)
        questions.append(prepared)
    return Exam(
        id=exam.id,
        title=exam.title,
        duration_seconds=exam.duration_seconds,
        questions=tuple(questions),
    )
