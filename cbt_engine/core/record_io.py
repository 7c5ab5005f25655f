"""Loading and saving stored exam and result records as JSON.

Records use the camelCase keys written by the portal, e.g.::

    {"id": "e1", "title": "Physics", "durationSeconds": 1800,
     "questions": [{"id": "q1", "text": "...", "options": ["a", "b"],
                    "correctOptionIndex": 1, "points": 2}]}

A file holds either a JSON array of records or an object with an ``exams`` or
``results`` array. Older exam records carry ``duration`` in minutes and name
the correct index ``correctAnswer``; both are still accepted. Unknown result
keys are kept and written back unchanged, as are result records that fail
validation.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from cbt_engine.constants.engine_constants import DEFAULT_QUESTION_POINTS
from cbt_engine.core.errors import RecordFormatError
from cbt_engine.core.models import Exam, Question, Result

logger = logging.getLogger(__name__)


class _StoredRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionRecord(_StoredRecord):
    """Stored question; values are checked later by normalization, not here."""

    id: str = ""
    text: str = ""
    options: list[Any] = Field(default_factory=list)
    correct_option_index: Any = Field(
        default=None,
        validation_alias=AliasChoices("correctOptionIndex", "correct_option_index", "correctAnswer"),
    )
    points: Any = DEFAULT_QUESTION_POINTS

    @field_validator("id", "text", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def to_question(self) -> Question:
        return Question(
            id=self.id,
            text=self.text,
            options=tuple("" if option is None else str(option) for option in self.options),
            correct_option_index=self.correct_option_index,
            points=self.points,
        )


class ExamRecord(_StoredRecord):
    id: str
    title: str = ""
    duration_seconds: int | None = None
    duration: float | None = None
    questions: list[QuestionRecord] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_exam(self) -> Exam:
        duration_seconds = self.duration_seconds
        if not duration_seconds and self.duration:
            duration_seconds = int(round(self.duration * 60))
        return Exam(
            id=self.id,
            title=self.title,
            duration_seconds=duration_seconds or 0,
            questions=tuple(question.to_question() for question in self.questions),
        )


class ResultRecord(_StoredRecord):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    exam_id: str
    student_id: str
    student_name: str = ""
    exam_title: str = ""
    total_questions: int = 0
    correct_answers: int = 0
    total_score: int | float = 0
    max_score: int | float = 0
    answers: dict[str, Any] = Field(default_factory=dict)
    submitted_at: datetime
    time_spent_seconds: int = Field(
        default=0,
        validation_alias=AliasChoices("timeSpentSeconds", "time_spent_seconds", "timeSpent"),
    )
    recalculated_at: datetime | None = None

    def to_result(self) -> Result:
        return Result(
            exam_id=self.exam_id,
            student_id=self.student_id,
            student_name=self.student_name,
            exam_title=self.exam_title,
            total_questions=self.total_questions,
            correct_answers=self.correct_answers,
            total_score=self.total_score,
            max_score=self.max_score,
            answers=dict(self.answers),
            submitted_at=self.submitted_at,
            time_spent_seconds=self.time_spent_seconds,
            recalculated_at=self.recalculated_at,
            extra=dict(self.model_extra or {}),
        )

    @classmethod
    def from_result(cls, result: Result) -> ResultRecord:
        return cls(
            exam_id=result.exam_id,
            student_id=result.student_id,
            student_name=result.student_name,
            exam_title=result.exam_title,
            total_questions=result.total_questions,
            correct_answers=result.correct_answers,
            total_score=result.total_score,
            max_score=result.max_score,
            answers=result.answers,
            submitted_at=result.submitted_at,
            time_spent_seconds=result.time_spent_seconds,
            recalculated_at=result.recalculated_at,
            **result.extra,
        )


_EXAM_LIST = TypeAdapter(list[ExamRecord])


def load_exams(file_path: Path) -> list[Exam]:
    payload = _read_records(file_path, "exams")
    try:
        records = _EXAM_LIST.validate_python(payload)
    except ValidationError as exc:
        raise RecordFormatError(f"{file_path}: invalid exam record: {exc}") from exc
    return [record.to_exam() for record in records]


@dataclass(slots=True)
class UnreadableRecord:
    """Stored result that failed validation; written back exactly as read."""

    position: int
    payload: Any
    error: str


@dataclass(slots=True)
class LoadedResults:
    """Contents of a results file, in file order."""

    entries: list[Result | UnreadableRecord] = field(default_factory=list)

    @property
    def results(self) -> list[Result]:
        return [entry for entry in self.entries if isinstance(entry, Result)]

    @property
    def unreadable(self) -> list[UnreadableRecord]:
        return [entry for entry in self.entries if isinstance(entry, UnreadableRecord)]


def load_results(file_path: Path) -> LoadedResults:
    """Read a results file, validating each record on its own.

    Records that fail validation are kept as :class:`UnreadableRecord` so
    one bad record does not block the rest of the file.
    """
    loaded = LoadedResults()
    for position, payload in enumerate(_read_records(file_path, "results")):
        try:
            record = ResultRecord.model_validate(payload)
        except ValidationError as exc:
            error = _first_error(exc)
            logger.warning("%s: result record %d is unreadable: %s", file_path, position, error)
            loaded.entries.append(UnreadableRecord(position=position, payload=payload, error=error))
            continue
        loaded.entries.append(record.to_result())
    return loaded


def dump_result(result: Result) -> dict[str, Any]:
    payload = ResultRecord.from_result(result).model_dump(mode="json", by_alias=True)
    if payload.get("recalculatedAt") is None:
        payload.pop("recalculatedAt", None)
    return payload


def save_results(file_path: Path, entries: Iterable[Result | UnreadableRecord]) -> None:
    """Write results to ``file_path`` as a JSON array; unreadable records go back untouched."""
    records = [
        entry.payload if isinstance(entry, UnreadableRecord) else dump_result(entry)
        for entry in entries
    ]
    document = json.dumps(records, indent=2, ensure_ascii=False)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(document + "\n", encoding="utf-8")


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {error['msg']}" if location else error["msg"]


def _read_records(file_path: Path, key: str) -> list[Any]:
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RecordFormatError(f"{file_path}: not valid JSON ({exc})") from exc
    if isinstance(payload, dict):
        payload = payload.get(key)
    if not isinstance(payload, list):
        raise RecordFormatError(f"{file_path}: expected a list of {key}.")
    return payload
