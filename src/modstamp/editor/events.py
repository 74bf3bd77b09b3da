"""Edit events raised by the host editor and the filters that turn them into notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import TYPE_CHECKING, Callable, List, MutableMapping, Optional, Type

from ..services.host import DocumentLike
from ..services.settings import Settings

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..core.orchestrator import UpdateOrchestrator

__all__ = [
    "EditEvent",
    "EditorChangeEvent",
    "EditorUpdate",
    "KeyInputEvent",
    "EditEventBus",
    "EditNotificationSource",
    "is_user_change",
    "is_typed_character",
]

LOGGER = logging.getLogger(__name__)
_USER_EDIT_EVENTS: tuple[str, ...] = ("input", "delete", "move")
_LINE_TERMINATORS = {"\n", "\r", "\u2028", "\u2029"}


@dataclass(slots=True, frozen=True)
class EditorUpdate:
    """Summary of one editor view update: did the text change, and which user events caused it."""

    doc_changed: bool
    user_events: tuple[str, ...] = ()

    def has_user_event(self, name: str) -> bool:
        # "input" matches "input.type", "input.paste", ...
        return any(event == name or event.startswith(name + ".") for event in self.user_events)


class EditEvent:
    """Base class for edit events."""

    __slots__ = ("document_id", "source")

    def __init__(self, document_id: str | None, *, source: str | None = None) -> None:
        self.document_id = document_id
        self.source = source


class EditorChangeEvent(EditEvent):
    """The host reports that a document's contents changed.

    ``update`` is ``None`` for coarse signals (file modified on disk) that
    carry no information about who made the change.
    """

    __slots__ = ("update",)

    def __init__(
        self,
        document_id: str,
        *,
        update: EditorUpdate | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(document_id, source=source)
        self.update = update


class KeyInputEvent(EditEvent):
    """A raw typing event from the editor UI; the document is resolved lazily."""

    __slots__ = ("data", "ctrl", "alt", "meta", "in_editor")

    def __init__(
        self,
        data: str | None,
        *,
        document_id: str | None = None,
        ctrl: bool = False,
        alt: bool = False,
        meta: bool = False,
        in_editor: bool = True,
        source: str | None = None,
    ) -> None:
        super().__init__(document_id, source=source)
        self.data = data
        self.ctrl = ctrl
        self.alt = alt
        self.meta = meta
        self.in_editor = in_editor


def is_user_change(update: EditorUpdate | None) -> bool:
    """Return whether ``update`` changed the text through explicit user interaction.

    Replacing the whole document (``set``, e.g. opening another note in the
    same editor) never counts.
    """

    if update is None or not update.doc_changed:
        return False
    if update.has_user_event("set"):
        return False
    return any(update.has_user_event(name) for name in _USER_EDIT_EVENTS)


def is_typed_character(event: KeyInputEvent) -> bool:
    """Single visible character typed inside the editor, without modifier keys."""

    if not event.in_editor or event.ctrl or event.alt or event.meta:
        return False
    data = event.data or ""
    return len(data) == 1 and data not in _LINE_TERMINATORS


Subscriber = Callable[[EditEvent], None]


class EditEventBus:
    """Synchronous pub/sub bus for edit events."""

    def __init__(self) -> None:
        self._subscribers: MutableMapping[Type[EditEvent], List[Subscriber]] = {}
        self._lock = RLock()

    def subscribe(self, event_type: Type[EditEvent], handler: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type[EditEvent], handler: Subscriber) -> None:
        with self._lock:
            subscribers = self._subscribers.get(event_type)
            if not subscribers:
                return
            subscribers[:] = [sub for sub in subscribers if sub != handler]
            if not subscribers:
                self._subscribers.pop(event_type, None)

    def subscriber_count(self, event_type: Type[EditEvent]) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, ()))

    def publish(self, event: EditEvent) -> None:
        with self._lock:
            to_invoke = [
                handler
                for event_type, subscribers in self._subscribers.items()
                if isinstance(event, event_type)
                for handler in subscribers
            ]
        for callback in to_invoke:
            try:
                callback(event)
            except Exception:  # pragma: no cover - subscriber isolation
                LOGGER.exception("Edit event subscriber failed")


DocumentResolver = Callable[[str], Optional[DocumentLike]]
ActiveDocumentResolver = Callable[[], Optional[DocumentLike]]


class EditNotificationSource:
    """Feeds edit events from the bus into an :class:`UpdateOrchestrator`.

    With ``use_keyup_events`` off every editor change counts. With it on,
    only typed characters and editor updates caused by the user count, so
    files rewritten by sync tools or other programs keep their timestamps.
    """

    def __init__(
        self,
        *,
        bus: EditEventBus,
        orchestrator: UpdateOrchestrator,
        settings: Settings,
        resolve_document: DocumentResolver,
        active_document: ActiveDocumentResolver | None = None,
    ) -> None:
        self._bus = bus
        self._orchestrator = orchestrator
        self._settings = settings
        self._resolve_document = resolve_document
        self._active_document = active_document
        self._attached = False

    @property
    def typing_mode(self) -> bool:
        return self._settings.use_keyup_events

    def attach(self) -> None:
        if self._attached:
            return
        self._bus.subscribe(EditorChangeEvent, self._handle_editor_change)
        if self.typing_mode:
            self._bus.subscribe(KeyInputEvent, self._handle_key_input)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._bus.unsubscribe(EditorChangeEvent, self._handle_editor_change)
        self._bus.unsubscribe(KeyInputEvent, self._handle_key_input)
        self._attached = False

    def _handle_editor_change(self, event: EditEvent) -> None:
        if not isinstance(event, EditorChangeEvent) or not event.document_id:
            return
        if self.typing_mode and not is_user_change(event.update):
            # Not a user edit, but it may still be the host reporting our own write.
            self._orchestrator.absorb_echo(event.document_id)
            return
        document = self._resolve(event.document_id)
        if document is not None:
            self._orchestrator.notify(document)

    def _handle_key_input(self, event: EditEvent) -> None:
        if not isinstance(event, KeyInputEvent) or not is_typed_character(event):
            return
        try:
            if event.document_id:
                document = self._resolve_document(event.document_id)
            elif self._active_document is not None:
                document = self._active_document()
            else:
                document = None
        except Exception:
            LOGGER.debug("Unable to resolve the active document for a key event", exc_info=True)
            return
        if document is not None:
            self._orchestrator.notify(document)

    def _resolve(self, document_id: str) -> DocumentLike | None:
        try:
            return self._resolve_document(document_id)
        except Exception:
            LOGGER.debug("Unable to resolve document %s", document_id, exc_info=True)
            return None
