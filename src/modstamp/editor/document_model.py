"""Dataclasses describing documents known to a host."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class DocumentHandle:
    """Stable identity of a document (its host-relative path) plus the instant it was created."""

    path: str
    created_at: datetime = field(default_factory=_utcnow)
