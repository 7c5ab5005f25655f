"""Background countdown that drives an exam session's timer."""

from __future__ import annotations

import logging
from threading import Event, Thread

from cbt_engine.constants.engine_constants import TICK_INTERVAL_SECONDS
from cbt_engine.core.errors import EngineError
from cbt_engine.core.services.exam_session import ExamSession, SessionStatus

logger = logging.getLogger(__name__)


class SessionTimer:
    """Calls ``session.tick()`` once per interval until the attempt stops being in progress."""

    def __init__(self, session: ExamSession, interval: float = TICK_INTERVAL_SECONDS) -> None:
        if interval <= 0:
            raise ValueError("Tick interval must be positive.")
        self._session = session
        self._interval = interval
        self._stop_event = Event()
        self._thread: Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Timer has already been started.")
        self._thread = Thread(
            target=self._run,
            name=f"exam-timer-{self._session.exam_id}-{self._session.student_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            if self._session.status is not SessionStatus.IN_PROGRESS:
                break
            try:
                self._session.tick()
            except EngineError:
                logger.exception(
                    "Automatic submission failed for student %s on exam %s",
                    self._session.student_id,
                    self._session.exam_id,
                )
                break
