"""Tracked-field value computation: race guard, log mode, bucketing and trimming."""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Union

from pendulum import DateTime

from ..services.settings import Settings
from .dates import DateFormatter, FormattedDate, same_bucket

__all__ = [
    "MIN_UPDATE_INTERVAL_SECONDS",
    "FieldValue",
    "is_log_mode",
    "latest_entry",
    "seconds_since_last_update",
    "is_too_soon",
    "compute_new_value",
]

LOGGER = logging.getLogger(__name__)

# Two synced copies of a note would otherwise keep re-stamping each other.
MIN_UPDATE_INTERVAL_SECONDS = 30

FieldValue = Union[FormattedDate, list[Any]]


def is_log_mode(metadata: Mapping[str, Any] | None, settings: Settings) -> bool:
    """Return whether the tracked field is kept as a history list for this document."""

    if settings.store_history_log:
        return True
    if not settings.append_field:
        return False
    return bool((metadata or {}).get(settings.append_field))


def latest_entry(previous_value: Any, *, log_mode: bool, newest_first: bool) -> Any:
    """Return the most recently recorded timestamp held in ``previous_value``."""

    if log_mode and isinstance(previous_value, list):
        if not previous_value:
            return None
        return previous_value[0] if newest_first else previous_value[-1]
    return previous_value


def seconds_since_last_update(
    previous_value: Any,
    now: DateTime,
    formatter: DateFormatter,
    *,
    log_mode: bool,
    newest_first: bool,
) -> float:
    """Whole seconds between the last recorded timestamp and ``now``.

    Absent or unparseable previous values yield ``math.inf``. The difference
    is signed, so a timestamp recorded in the future counts as too recent.
    """

    if not previous_value:
        return math.inf
    entry = latest_entry(previous_value, log_mode=log_mode, newest_first=newest_first)
    previous = formatter.parse(entry)
    if previous is None:
        return math.inf
    return int((now - previous).total_seconds())


def is_too_soon(seconds: float) -> bool:
    return seconds <= MIN_UPDATE_INTERVAL_SECONDS


def compute_new_value(
    previous_value: Any,
    now: DateTime,
    settings: Settings,
    formatter: DateFormatter,
    *,
    log_mode: bool,
) -> FieldValue:
    """Return the value to store in the tracked field for an edit at ``now``.

    Outside log mode the formatted timestamp replaces whatever was there. In
    log mode the newest entry is replaced when it shares a bucket
    (``append_maximum_frequency``) with ``now``; otherwise a new entry is added
    at the newest end and the list is trimmed from the oldest end to
    ``history_max_items``.
    """

    new_entry = formatter.format(now)
    if not log_mode:
        return new_entry

    newest_first = settings.history_newest_first
    entries = _as_entries(previous_value)
    if not entries:
        return [new_entry]

    newest_index = 0 if newest_first else len(entries) - 1
    previous = formatter.parse(entries[newest_index])
    if previous is not None and same_bucket(previous, now, settings.append_maximum_frequency):
        entries[newest_index] = new_entry
    elif newest_first:
        entries.insert(0, new_entry)
    else:
        entries.append(new_entry)

    limit = settings.history_max_items
    if limit > 0 and len(entries) > limit:
        LOGGER.debug("Trimming history from %d to %d entries", len(entries), limit)
        entries = entries[:limit] if newest_first else entries[-limit:]
    return entries


def _as_entries(previous_value: Any) -> list[Any]:
    if previous_value is None or previous_value == "":
        return []
    if isinstance(previous_value, (list, tuple)):
        return list(previous_value)
    return [previous_value]
