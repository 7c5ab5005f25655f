"""Error conditions raised by the exam engine."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class InvalidExamError(EngineError):
    """Raised when an exam cannot be attempted (no well-formed questions, bad duration)."""


class ExamNotFoundError(EngineError, LookupError):
    """Raised when an exam id cannot be resolved against the source of truth."""

    def __init__(self, exam_id: str) -> None:
        super().__init__(f"Exam {exam_id!r} was not found.")
        self.exam_id = exam_id


class SessionStateError(EngineError):
    """Raised when a session operation is not allowed in the current state."""


class AlreadySubmittedError(SessionStateError):
    """Raised when an attempt that has already been submitted is restarted or abandoned."""


class RecordFormatError(EngineError):
    """Raised when a stored exam or result record cannot be parsed."""
