"""Service collecting submitted results."""

from __future__ import annotations

from threading import Lock

from cbt_engine.core.models import Result


class ResultLedger:
    """In-memory result sink; sessions call it with each finished result."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._results: list[Result] = []

    def __call__(self, result: Result) -> None:
        self.record(result)

    def record(self, result: Result) -> None:
        with self._lock:
            self._results.append(result)

    def results(self) -> list[Result]:
        with self._lock:
            return list(self._results)

    def results_for_exam(self, exam_id: str) -> list[Result]:
        with self._lock:
            return [r for r in self._results if r.exam_id == exam_id]

    def top_results(self, exam_id: str, limit: int = 3) -> list[Result]:
        """Return the best results for an exam, by score then by time spent."""
        ranked = sorted(
            self.results_for_exam(exam_id),
            key=lambda r: (-r.total_score, r.time_spent_seconds),
        )
        return ranked[:limit]

    def clear(self) -> None:
        with self._lock:
            self._results.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)
