"""Scoring and session constants shared across the engine."""

DEFAULT_QUESTION_POINTS: int = 1
MIN_OPTION_COUNT: int = 2
TICK_INTERVAL_SECONDS: float = 1.0
DEFAULT_REPAIR_WORKERS: int = 1
