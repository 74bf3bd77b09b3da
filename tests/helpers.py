"""Shared test doubles.

Import from here instead of redefining hosts and clocks in each test module.
"""

from __future__ import annotations

from typing import Any, Callable

import pendulum
from pendulum import DateTime

from modstamp.editor.document_model import DocumentHandle
from modstamp.services.host import DocumentLike, MetadataMutation


class InMemoryHost:
    """Metadata host that keeps each document's frontmatter in a dict.

    Set ``fail_with`` to make the next writes raise, and ``on_write`` to
    simulate the change notification a real host emits after a write.
    """

    def __init__(self, metadata: dict[str, dict[str, Any]] | None = None) -> None:
        self.metadata: dict[str, dict[str, Any]] = {
            path: dict(values) for path, values in (metadata or {}).items()
        }
        self.writes: list[tuple[str, dict[str, Any]]] = []
        self.fail_with: Exception | None = None
        self.on_write: Callable[[str], None] | None = None

    def read_metadata(self, document: DocumentLike) -> dict[str, Any]:
        return dict(self.metadata.get(document.path, {}))

    def process_metadata(self, document: DocumentLike, mutate: MetadataMutation) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        data = dict(self.metadata.get(document.path, {}))
        mutate(data)
        self.metadata[document.path] = data
        self.writes.append((document.path, dict(data)))
        if self.on_write is not None:
            self.on_write(document.path)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: DateTime) -> None:
        self.current = start

    def __call__(self) -> DateTime:
        return self.current

    def advance(self, **delta: int) -> DateTime:
        self.current = self.current.add(**delta)
        return self.current


def make_document(path: str = "notes/today.md", created_at: DateTime | None = None) -> DocumentHandle:
    return DocumentHandle(path=path, created_at=created_at or pendulum.datetime(2023, 12, 24, 9, 30, tz="UTC"))
