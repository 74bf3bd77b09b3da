"""Scheduling and history engine for timestamp updates."""

from .dates import DEFAULT_PATTERN, DateFormatter, bucket_start, same_bucket
from .history import MIN_UPDATE_INTERVAL_SECONDS, compute_new_value, is_log_mode, seconds_since_last_update
from .orchestrator import UpdateOrchestrator, UpdateOutcome, UpdateResult, WriteMarker, WriteState
from .policy import BlockReason, blocking_reason, should_write
from .scheduler import DebounceScheduler

__all__ = [
    "DEFAULT_PATTERN",
    "DateFormatter",
    "bucket_start",
    "same_bucket",
    "MIN_UPDATE_INTERVAL_SECONDS",
    "compute_new_value",
    "is_log_mode",
    "seconds_since_last_update",
    "UpdateOrchestrator",
    "UpdateOutcome",
    "UpdateResult",
    "WriteMarker",
    "WriteState",
    "BlockReason",
    "blocking_reason",
    "should_write",
    "DebounceScheduler",
]
