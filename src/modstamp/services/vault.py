"""Reference host: a folder of Markdown files with YAML frontmatter."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping

from ..editor.document_model import DocumentHandle
from ..editor.events import EditEventBus, EditorChangeEvent
from ..editor.frontmatter import load_frontmatter, render_document, split_frontmatter
from ..utils.file_io import NoteSignature, read_note, scan_note, write_note
from .host import DocumentLike, MetadataMutation

__all__ = ["MarkdownVault", "VaultWatcher"]

LOGGER = logging.getLogger(__name__)
_MARKDOWN_SUFFIXES = {".md", ".markdown"}
_WATCHER_SOURCE = "vault-watcher"


class MarkdownVault:
    """Implements the metadata host capabilities on plain files under ``root``.

    Documents are identified by their root-relative POSIX path.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()
        if not self._root.is_dir():
            raise ValueError(f"Vault root {self._root} is not a directory")

    @property
    def root(self) -> Path:
        return self._root

    def document(self, path: Path | str) -> DocumentHandle:
        """Return the handle for ``path`` (absolute or relative to the vault root)."""

        target = Path(path)
        absolute = target if target.is_absolute() else self._root / target
        absolute = absolute.resolve()
        try:
            relative = absolute.relative_to(self._root)
        except ValueError as exc:
            raise ValueError(f"{absolute} is outside the vault {self._root}") from exc
        return DocumentHandle(path=relative.as_posix(), created_at=_creation_time(absolute))

    def resolve(self, document_id: str) -> DocumentHandle | None:
        if not self.absolute_path(document_id).is_file():
            return None
        return self.document(document_id)

    def absolute_path(self, document: DocumentLike | str) -> Path:
        document_id = document if isinstance(document, str) else document.path
        return self._root / Path(document_id)

    def iter_documents(self) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            for filename in sorted(filenames):
                if Path(filename).suffix.lower() in _MARKDOWN_SUFFIXES:
                    yield Path(dirpath) / filename

    def read_metadata(self, document: DocumentLike) -> Mapping[str, Any]:
        try:
            text = read_note(self.absolute_path(document))
        except UnicodeDecodeError:
            LOGGER.warning("%s is not valid UTF-8; treating it as having no frontmatter", document.path)
            return {}
        return load_frontmatter(split_frontmatter(text).block)

    def process_metadata(self, document: DocumentLike, mutate: MetadataMutation) -> None:
        """Rewrite the frontmatter of ``document`` through ``mutate``.

        Raises ``ValueError`` and leaves the file untouched when the existing
        frontmatter cannot be parsed as a mapping or the note is not UTF-8.
        """

        target = self.absolute_path(document)
        parsed = split_frontmatter(read_note(target))
        data = load_frontmatter(parsed.block, strict=True)
        mutate(data)
        write_note(target, render_document(data, parsed))
        LOGGER.debug("Wrote frontmatter for %s", document.path)


class VaultWatcher:
    """Polls the vault for changed Markdown files and publishes change events."""

    def __init__(self, vault: MarkdownVault, bus: EditEventBus, *, interval: float = 1.0) -> None:
        self._vault = vault
        self._bus = bus
        self._interval = max(0.05, float(interval))
        self._signatures: dict[Path, NoteSignature] = {}
        self._task: asyncio.Task[None] | None = None

    def prime(self) -> int:
        """Record current signatures so existing files are not reported as changed."""

        self._signatures = {}
        for path in self._vault.iter_documents():
            with contextlib.suppress(OSError):
                self._signatures[path], _ = scan_note(path)
        return len(self._signatures)

    def poll(self) -> list[str]:
        """Publish an event for every new or modified document; return their ids."""

        changed: list[str] = []
        seen: set[Path] = set()
        for path in self._vault.iter_documents():
            seen.add(path)
            try:
                signature, modified = scan_note(path, self._signatures.get(path))
            except OSError:
                LOGGER.debug("Unable to scan %s", path, exc_info=True)
                continue
            self._signatures[path] = signature
            if not modified:
                continue
            document_id = path.relative_to(self._vault.root).as_posix()
            changed.append(document_id)
            self._bus.publish(EditorChangeEvent(document_id, source=_WATCHER_SOURCE))
        for stale in set(self._signatures) - seen:
            self._signatures.pop(stale, None)
        return changed

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self.prime()
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def aclose(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.poll()
            except OSError:
                LOGGER.warning("Polling %s failed", self._vault.root, exc_info=True)


def _creation_time(path: Path) -> datetime:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return datetime.now(timezone.utc)
    created = getattr(stat, "st_birthtime", None) or stat.st_ctime
    return datetime.fromtimestamp(created, tz=timezone.utc)
