"""Timestamp rendering, strict parsing and time-bucket helpers.

Patterns use Moment-style tokens (``YYYY-MM-DD HH:mm``, ``X`` for epoch
seconds, ``[...]`` for literal text), which ``pendulum`` understands for both
formatting and parsing.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Union

import pendulum
from pendulum import DateTime
from pendulum.tz.timezone import FixedTimezone, Timezone

__all__ = [
    "DEFAULT_PATTERN",
    "DateFormatter",
    "FormattedDate",
    "bucket_start",
    "same_bucket",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_PATTERN = "YYYY-MM-DDTHH:mm:ssZ"
_NUMERIC_PATTERN = re.compile(r"^\d+$")

FormattedDate = Union[str, int]
TimezoneLike = Union[str, Timezone, FixedTimezone]


class DateFormatter:
    """Formats instants with a configurable pattern and parses them back strictly."""

    def __init__(
        self,
        pattern: str = "",
        *,
        tz: TimezoneLike | None = None,
        clock: Callable[[], DateTime] | None = None,
    ) -> None:
        self._pattern = pattern or ""
        self._tz = pendulum.timezone(tz) if isinstance(tz, str) else (tz or pendulum.local_timezone())
        self._clock = clock

    @property
    def pattern(self) -> str:
        """Return the effective pattern (the default when none was configured)."""

        return self._pattern or DEFAULT_PATTERN

    @property
    def tz(self) -> Timezone | FixedTimezone:
        return self._tz

    def now(self) -> DateTime:
        if self._clock is not None:
            return self._clock().in_timezone(self._tz)
        return pendulum.now(self._tz)

    def format(self, instant: datetime) -> FormattedDate:
        """Render ``instant``; digits-only output is returned as an ``int``."""

        output = _to_pendulum(instant, self._tz).in_timezone(self._tz).format(self.pattern)
        if _NUMERIC_PATTERN.match(output):
            return int(output, 10)
        return output

    def parse(self, value: Any) -> DateTime | None:
        """Strictly parse a stored value, returning ``None`` when it does not match.

        Integers are parsed through their decimal text so numeric patterns
        round-trip. Values a YAML loader already decoded into ``datetime`` or
        ``date`` objects are taken as the instants they describe.
        """

        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (datetime, date)):
            return _to_pendulum(value, self._tz)
        if isinstance(value, int):
            text = str(value)
        elif isinstance(value, str):
            text = value.strip()
        else:
            return None
        if not text:
            return None
        try:
            return pendulum.from_format(text, self.pattern, tz=self._tz)
        except (ValueError, TypeError) as exc:
            LOGGER.debug("Value %r does not match pattern %r: %s", text, self.pattern, exc)
            return None


def bucket_start(instant: DateTime, unit: str) -> DateTime:
    """Truncate ``instant`` to the start of ``unit`` in its own timezone.

    Weeks start on Sunday, like Moment's default ``en`` locale.
    """

    if unit == "week":
        # isoweekday: Monday=1 .. Sunday=7, so Sunday maps to zero days back.
        return instant.start_of("day").subtract(days=instant.isoweekday() % 7)
    if unit == "quarter":
        first_month = ((instant.month - 1) // 3) * 3 + 1
        return instant.start_of("month").set(month=first_month)
    if unit not in {"minute", "hour", "day", "month", "year"}:
        raise ValueError(f"Unsupported bucket unit: {unit!r}")
    return instant.start_of(unit)


def same_bucket(previous: DateTime, now: DateTime, unit: str) -> bool:
    """Return whether ``previous`` falls in the same ``unit`` as ``now``, seen from ``now``'s timezone."""

    localized = previous.in_timezone(now.timezone) if now.timezone is not None else previous
    return bucket_start(localized, unit) == bucket_start(now, unit)


def _to_pendulum(value: datetime | date, tz: Timezone | FixedTimezone) -> DateTime:
    if isinstance(value, DateTime):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pendulum.instance(value, tz=tz)
        return pendulum.instance(value)
    return pendulum.datetime(value.year, value.month, value.day, tz=tz)
