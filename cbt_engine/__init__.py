"""Exam session and scoring engine for the computer-based testing portal."""

from .core.errors import (
    AlreadySubmittedError,
    EngineError,
    ExamNotFoundError,
    InvalidExamError,
    RecordFormatError,
    SessionStateError,
)
from .core.models import Exam, Question, Result, ScoredOutcome
from .core.scoring import score_attempt
from .core.services.exam_session import ExamSession, Navigation, SessionStatus, SubmitReason
from .core.services.result_repair import RepairReport, repair_results

__all__ = [
    "AlreadySubmittedError",
    "EngineError",
    "Exam",
    "ExamNotFoundError",
    "ExamSession",
    "InvalidExamError",
    "Navigation",
    "Question",
    "RecordFormatError",
    "RepairReport",
    "Result",
    "ScoredOutcome",
    "SessionStateError",
    "SessionStatus",
    "SubmitReason",
    "repair_results",
    "score_attempt",
]
