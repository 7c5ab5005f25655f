"""Service for managing one student's attempt at an exam."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
import logging
from threading import Lock
import time
from typing import Any

from cbt_engine.core.errors import (
    AlreadySubmittedError,
    ExamNotFoundError,
    InvalidExamError,
    SessionStateError,
)
from cbt_engine.core.models import Exam, Question, Result
from cbt_engine.core.normalization import coerce_option_index, normalize_exam
from cbt_engine.core.scoring import score_attempt

logger = logging.getLogger(__name__)

ExamLookup = Callable[[str], Exam | None]
ResultSink = Callable[[Result], None]


class SessionStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


class SubmitReason(Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"


class Navigation(Enum):
    PREVIOUS = "previous"
    NEXT = "next"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExamSession:
    """State machine for a single attempt: NOT_STARTED -> IN_PROGRESS -> TERMINATING -> TERMINATED.

    State changes happen under ``_lock``. The IN_PROGRESS -> TERMINATING
    check-and-set in :meth:`submit` is the only way into grading, so a manual
    submit racing the timer's timeout scores the attempt exactly once.
    Submits are serialized by ``_submit_lock``; the exam lookup, scoring and
    the result sink run without ``_lock`` held, so collaborators may read the
    session views.
    """

    def __init__(
        self,
        exam_id: str,
        student_id: str,
        student_name: str,
        exam_lookup: ExamLookup,
        result_sink: ResultSink,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._lock = Lock()
        self._submit_lock = Lock()
        self._exam_id = exam_id
        self._student_id = student_id
        self._student_name = student_name
        self._exam_lookup = exam_lookup
        self._result_sink = result_sink
        self._clock = clock
        self._now = now

        self._status: SessionStatus = SessionStatus.NOT_STARTED
        self._exam: Exam | None = None
        self._questions_by_id: dict[str, Question] = {}
        self._current_index: int = 0
        self._answers: dict[str, int] = {}
        self._remaining_seconds: int = 0
        self._started_at: float | None = None

        self._submit_reason: SubmitReason | None = None
        self._frozen_answers: dict[str, int] = {}
        self._time_spent_seconds: int = 0
        self._pending_result: Result | None = None
        self._result: Result | None = None

    # --- Lifecycle ---

    def start(self, exam: Exam | None = None) -> None:
        """Begin the attempt. The exam is fetched through the lookup when not given."""
        with self._lock:
            if self._status in (SessionStatus.TERMINATING, SessionStatus.TERMINATED):
                raise AlreadySubmittedError(f"Attempt at exam {self._exam_id} has already ended.")
            if self._status is SessionStatus.IN_PROGRESS:
                raise SessionStateError(f"Attempt at exam {self._exam_id} is already in progress.")

            if exam is None:
                exam = self._resolve_exam()
            if exam.id != self._exam_id:
                raise InvalidExamError(f"Session is for exam {self._exam_id}, got exam {exam.id}.")

            prepared = normalize_exam(exam)
            if not prepared.questions:
                raise InvalidExamError(f"Exam {exam.id} has no well-formed questions.")
            duration = prepared.duration_seconds
            if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
                raise InvalidExamError(f"Exam {exam.id} has an invalid duration: {duration!r}.")

            self._exam = prepared
            self._questions_by_id = {question.id: question for question in prepared.questions}
            self._current_index = 0
            self._answers = {}
            self._remaining_seconds = duration
            self._started_at = self._clock()
            self._status = SessionStatus.IN_PROGRESS

        logger.info(
            "Student %s started exam %s (%d questions, %ds)",
            self._student_id,
            self._exam_id,
            len(prepared.questions),
            duration,
        )

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> Result:
        """Grade the attempt once and hand the result to the sink.

        Later calls return the result produced by the first successful call.
        If the exam cannot be found the session stays TERMINATING and the call
        may be retried.
        """
        with self._submit_lock:
            with self._lock:
                if self._status is SessionStatus.NOT_STARTED:
                    raise SessionStateError(f"Attempt at exam {self._exam_id} has not started.")
                if self._status is SessionStatus.TERMINATED:
                    if self._result is None:
                        raise SessionStateError(f"Attempt at exam {self._exam_id} was abandoned.")
                    logger.debug(
                        "Ignoring %s submit for student %s; already submitted by %s",
                        reason.value,
                        self._student_id,
                        self._submit_reason.value if self._submit_reason else "unknown",
                    )
                    return self._result
                if self._status is SessionStatus.IN_PROGRESS:
                    self._status = SessionStatus.TERMINATING
                    self._submit_reason = reason
                    self._frozen_answers = dict(self._answers)
                    self._time_spent_seconds = self._elapsed_seconds()
            return self._finalize()

    def abandon(self) -> None:
        """Discard the attempt without grading it. Only allowed while in progress."""
        with self._lock:
            if self._status is SessionStatus.NOT_STARTED:
                raise SessionStateError(f"Attempt at exam {self._exam_id} has not started.")
            if self._status is SessionStatus.TERMINATING or self._result is not None:
                raise AlreadySubmittedError(f"Attempt at exam {self._exam_id} is already being submitted.")
            if self._status is SessionStatus.TERMINATED:
                raise SessionStateError(f"Attempt at exam {self._exam_id} was already abandoned.")
            self._status = SessionStatus.TERMINATED
        logger.info("Student %s abandoned exam %s", self._student_id, self._exam_id)

    # --- Attempt events ---

    def select_answer(self, question_id: str, option: Any) -> bool:
        """Record or change an answer. Returns True if the answer map changed.

        Passing ``None`` clears the answer for the question.
        """
        with self._lock:
            if self._status is not SessionStatus.IN_PROGRESS:
                logger.debug("Rejected answer for %s: session is %s", question_id, self._status.value)
                return False
            question = self._questions_by_id.get(str(question_id))
            if question is None:
                logger.debug("Rejected answer for unknown question %s", question_id)
                return False
            if option is None:
                return self._answers.pop(question.id, None) is not None

            option_index = coerce_option_index(option)
            if option_index is None or not 0 <= option_index < len(question.options):
                logger.debug("Rejected option %r for question %s", option, question.id)
                return False
            if self._answers.get(question.id) == option_index:
                return False
            self._answers[question.id] = option_index
            return True

    def navigate(self, target: Navigation | str | int) -> int:
        """Move to the previous, next or an explicit question, clamped to the exam bounds."""
        with self._lock:
            if self._status is not SessionStatus.IN_PROGRESS or self._exam is None:
                return self._current_index

            if isinstance(target, str) and target.strip().lower() in {n.value for n in Navigation}:
                target = Navigation(target.strip().lower())
            if target is Navigation.NEXT:
                candidate = self._current_index + 1
            elif target is Navigation.PREVIOUS:
                candidate = self._current_index - 1
            else:
                parsed = coerce_option_index(target)
                if parsed is None:
                    logger.debug("Ignoring navigation target %r", target)
                    return self._current_index
                candidate = parsed

            last_index = len(self._exam.questions) - 1
            self._current_index = min(max(candidate, 0), last_index)
            return self._current_index

    def tick(self) -> int:
        """Advance the countdown by one second; submits on timeout. Returns seconds left."""
        with self._lock:
            if self._status is not SessionStatus.IN_PROGRESS:
                return self._remaining_seconds
            if self._remaining_seconds > 0:
                self._remaining_seconds -= 1
            remaining = self._remaining_seconds

        if remaining == 0:
            logger.info("Time is up for student %s on exam %s", self._student_id, self._exam_id)
            self.submit(SubmitReason.TIMEOUT)
        return remaining

    # --- Views ---

    @property
    def exam_id(self) -> str:
        return self._exam_id

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._status

    @property
    def submit_reason(self) -> SubmitReason | None:
        with self._lock:
            return self._submit_reason

    @property
    def result(self) -> Result | None:
        with self._lock:
            return self._result

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._current_index

    @property
    def current_question(self) -> Question | None:
        with self._lock:
            if self._exam is None:
                return None
            return self._exam.questions[self._current_index]

    @property
    def questions(self) -> list[Question]:
        with self._lock:
            return list(self._exam.questions) if self._exam else []

    @property
    def question_count(self) -> int:
        with self._lock:
            return len(self._exam.questions) if self._exam else 0

    @property
    def remaining_seconds(self) -> int:
        with self._lock:
            return self._remaining_seconds

    @property
    def answers(self) -> dict[str, int]:
        with self._lock:
            return dict(self._answers)

    @property
    def answered_count(self) -> int:
        with self._lock:
            return len(self._answers)

    def is_answered(self, question_id: str) -> bool:
        with self._lock:
            return str(question_id) in self._answers

    def unanswered_question_ids(self) -> list[str]:
        with self._lock:
            if self._exam is None:
                return []
            return [q.id for q in self._exam.questions if q.id not in self._answers]

    def format_remaining(self) -> str:
        seconds = self.remaining_seconds
        hours, rest = divmod(seconds, 3600)
        minutes, secs = divmod(rest, 60)
        if hours:
            return f"{hours}:{minutes:02d}:{secs:02d}"
        return f"{minutes:02d}:{secs:02d}"

    # --- Internals ---

    def _resolve_exam(self) -> Exam:
        exam = self._exam_lookup(self._exam_id)
        if exam is None:
            raise ExamNotFoundError(self._exam_id)
        return exam

    def _elapsed_seconds(self) -> int:
        if self._started_at is None or self._exam is None:
            return 0
        elapsed = int(round(self._clock() - self._started_at))
        return min(max(elapsed, 0), self._exam.duration_seconds)

    def _finalize(self) -> Result:
        # _submit_lock held, _lock not held.
        if self._pending_result is None:
            try:
                exam = self._resolve_exam()
            except ExamNotFoundError:
                logger.warning(
                    "Exam %s disappeared before student %s could be graded",
                    self._exam_id,
                    self._student_id,
                )
                raise
            outcome = score_attempt(exam, self._frozen_answers)
            self._pending_result = Result(
                exam_id=self._exam_id,
                student_id=self._student_id,
                student_name=self._student_name,
                exam_title=exam.title,
                total_questions=outcome.total_questions,
                correct_answers=outcome.correct_answers,
                total_score=outcome.total_score,
                max_score=outcome.max_score,
                answers=dict(self._frozen_answers),
                submitted_at=self._now(),
                time_spent_seconds=self._time_spent_seconds,
            )

        self._result_sink(self._pending_result)
        with self._lock:
            self._result = self._pending_result
            self._status = SessionStatus.TERMINATED
        logger.info(
            "Student %s submitted exam %s (%s): %d/%d correct, %s/%s points",
            self._student_id,
            self._exam_id,
            self._submit_reason.value if self._submit_reason else "unknown",
            self._result.correct_answers,
            self._result.total_questions,
            self._result.total_score,
            self._result.max_score,
        )
        return self._result
