"""Turns debounced edit notifications into frontmatter timestamp writes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, MutableMapping

from pendulum import DateTime

from ..services.host import DocumentLike, MetadataHost
from ..services.settings import Settings
from .dates import DateFormatter
from .history import (
    FieldValue,
    compute_new_value,
    is_log_mode,
    is_too_soon,
    seconds_since_last_update,
)
from .policy import BlockReason, blocking_reason
from .scheduler import DebounceScheduler

__all__ = ["UpdateOrchestrator", "UpdateOutcome", "UpdateResult", "WriteMarker", "WriteState"]

LOGGER = logging.getLogger(__name__)


class WriteState(Enum):
    """Where a document is relative to the updater's own writes."""

    IDLE = "idle"
    PENDING_WRITE = "pending_write"
    AWAITING_ECHO = "awaiting_echo"


class WriteMarker:
    """Per-document state machine that recognises the notification caused by our own write.

    ``begin_write`` moves to ``PENDING_WRITE``. A notification arriving while the
    write is in flight is its echo and returns the document to ``IDLE``.
    ``finish_write`` moves ``PENDING_WRITE`` to ``AWAITING_ECHO``, and the
    next notification for the document is then swallowed. ``reset`` clears
    the state after a failed write.
    """

    def __init__(self) -> None:
        self._states: dict[str, WriteState] = {}

    def state(self, document_id: str) -> WriteState:
        return self._states.get(document_id, WriteState.IDLE)

    def begin_write(self, document_id: str) -> None:
        self._states[document_id] = WriteState.PENDING_WRITE

    def finish_write(self, document_id: str) -> None:
        if self._states.get(document_id) is WriteState.PENDING_WRITE:
            self._states[document_id] = WriteState.AWAITING_ECHO

    def reset(self, document_id: str) -> None:
        self._states.pop(document_id, None)

    def consume_echo(self, document_id: str) -> bool:
        """Return ``True`` (and go back to ``IDLE``) when a notification is our own echo."""

        if self.state(document_id) is WriteState.IDLE:
            return False
        self._states.pop(document_id, None)
        return True


class UpdateOutcome(Enum):
    WRITTEN = "written"
    BLOCKED = "blocked"
    TOO_SOON = "too_soon"
    FAILED = "failed"


@dataclass(slots=True)
class UpdateResult:
    """What happened to one debounced edit."""

    document_id: str
    outcome: UpdateOutcome
    reason: BlockReason | None = None
    value: FieldValue | None = None
    seconds_since_last_update: float | None = None
    created_written: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


class UpdateOrchestrator:
    """Debounces edits per document and writes the tracked timestamp when they settle."""

    def __init__(
        self,
        host: MetadataHost,
        settings: Settings,
        *,
        scheduler: DebounceScheduler | None = None,
        formatter: DateFormatter | None = None,
        clock: Callable[[], DateTime] | None = None,
        result_callback: Callable[[UpdateResult], None] | None = None,
    ) -> None:
        if host is None:
            raise ValueError("host is required")
        self._host = host
        self._settings = settings
        self._scheduler = scheduler or DebounceScheduler()
        self._clock = clock
        self._formatter = formatter or DateFormatter(settings.moment_format, clock=clock)
        self._marker = WriteMarker()
        self._result_callback = result_callback

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def scheduler(self) -> DebounceScheduler:
        return self._scheduler

    @property
    def marker(self) -> WriteMarker:
        return self._marker

    @property
    def formatter(self) -> DateFormatter:
        return self._formatter

    def reload_settings(self, settings: Settings) -> None:
        """Swap configuration; pending timers keep their original deadline."""

        self._settings = settings
        self._formatter = DateFormatter(settings.moment_format, tz=self._formatter.tz, clock=self._clock)

    def notify(self, document: DocumentLike) -> bool:
        """Record an edit of ``document``. Returns ``False`` when it was our own echo."""

        document_id = document.path
        if self._marker.consume_echo(document_id):
            LOGGER.debug("Ignoring change notification caused by our write to %s", document_id)
            return False
        self._scheduler.schedule(
            document_id,
            lambda: self.on_quiescent_edit(document),
            self._settings.timeout,
        )
        return True

    def absorb_echo(self, document_id: str) -> bool:
        """Consume a pending echo for ``document_id`` without scheduling anything."""

        if self._marker.consume_echo(document_id):
            LOGGER.debug("Absorbed change notification caused by our write to %s", document_id)
            return True
        return False

    def update_now(self, document: DocumentLike) -> UpdateResult:
        """Skip the debounce window and process ``document`` immediately."""

        self._scheduler.cancel(document.path)
        return self.on_quiescent_edit(document)

    def on_quiescent_edit(self, document: DocumentLike) -> UpdateResult:
        """Run policy, race guard and history update for a document whose edits settled."""

        result = self._process(document)
        if self._result_callback is not None:
            try:
                self._result_callback(result)
            except Exception:  # pragma: no cover - listeners must not break updates
                LOGGER.debug("Update result callback failed", exc_info=True)
        return result

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------
    def _process(self, document: DocumentLike) -> UpdateResult:
        settings = self._settings
        document_id = document.path
        metadata = dict(self._host.read_metadata(document) or {})

        reason = blocking_reason(metadata, settings, document_id)
        if reason is not None:
            LOGGER.debug("Not updating %s: %s", document_id, reason.value)
            return UpdateResult(document_id, UpdateOutcome.BLOCKED, reason=reason)

        now = self._formatter.now()
        log_mode = is_log_mode(metadata, settings)
        previous_value = metadata.get(settings.frontmatter_property)
        elapsed = seconds_since_last_update(
            previous_value,
            now,
            self._formatter,
            log_mode=log_mode,
            newest_first=settings.history_newest_first,
        )
        if is_too_soon(elapsed):
            LOGGER.debug("Not updating %s: last update was %ss ago", document_id, elapsed)
            return UpdateResult(document_id, UpdateOutcome.TOO_SOON, seconds_since_last_update=elapsed)

        new_value = compute_new_value(previous_value, now, settings, self._formatter, log_mode=log_mode)
        created_value = self._format_created(document)
        applied: dict[str, Any] = {}

        def _mutate(frontmatter: MutableMapping[str, Any]) -> None:
            frontmatter[settings.frontmatter_property] = new_value
            applied[settings.frontmatter_property] = new_value
            if created_value is not None and not frontmatter.get(settings.created_date_property):
                frontmatter[settings.created_date_property] = created_value
                applied[settings.created_date_property] = created_value

        self._marker.begin_write(document_id)
        try:
            self._host.process_metadata(document, _mutate)
        except Exception:
            self._marker.reset(document_id)
            LOGGER.exception("Failed to update frontmatter of %s", document_id)
            return UpdateResult(document_id, UpdateOutcome.FAILED, seconds_since_last_update=elapsed)
        self._marker.finish_write(document_id)

        LOGGER.info("Updated %s on %s", settings.frontmatter_property, document_id)
        return UpdateResult(
            document_id,
            UpdateOutcome.WRITTEN,
            value=new_value,
            seconds_since_last_update=elapsed,
            created_written=settings.created_date_property in applied,
            metadata=applied,
        )

    def _format_created(self, document: DocumentLike) -> Any:
        settings = self._settings
        if settings.only_update_existing or not settings.created_date_property:
            return None
        created_at = getattr(document, "created_at", None)
        if created_at is None:
            return None
        return self._formatter.format(created_at)
