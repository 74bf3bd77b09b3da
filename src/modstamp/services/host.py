"""Capabilities the updater needs from the application hosting the documents."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, MutableMapping, Protocol, runtime_checkable

__all__ = ["DocumentLike", "MetadataHost", "MetadataMutation"]

MetadataMutation = Callable[[MutableMapping[str, Any]], None]


@runtime_checkable
class DocumentLike(Protocol):
    """A document exposes a stable path-like identity and its creation instant."""

    path: str
    created_at: datetime


@runtime_checkable
class MetadataHost(Protocol):
    """Reads and mutates the frontmatter of documents owned by the host."""

    def read_metadata(self, document: DocumentLike) -> Mapping[str, Any]:
        """Return the current frontmatter snapshot, empty when the document has none."""

    def process_metadata(self, document: DocumentLike, mutate: MetadataMutation) -> None:
        """Apply ``mutate`` to the document's frontmatter atomically and persist it.

        Hosts may report a follow-up edit notification for the write.
        """
