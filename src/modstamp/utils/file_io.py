"""Reading, rewriting and fingerprinting Markdown notes on disk."""

from __future__ import annotations

import contextlib
import hashlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = ["NoteSignature", "read_note", "write_note", "scan_note"]

NOTE_ENCODING = "utf-8"


@dataclass(slots=True, frozen=True)
class NoteSignature:
    """What the watcher remembers about a note between polls."""

    mtime_ns: int
    size: int
    digest: str


def read_note(path: Path | str) -> str:
    """Return the note's text exactly as stored, byte order mark included.

    Notes are UTF-8; anything else raises ``UnicodeDecodeError``.
    """

    return Path(path).read_bytes().decode(NOTE_ENCODING)


def write_note(path: Path | str, text: str) -> None:
    """Replace the note with ``text`` in one rename so readers never see half a file.

    Line endings are written as given and the original permission bits are kept.
    """

    target = Path(path)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding=NOTE_ENCODING,
        newline="",
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    )
    try:
        with handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        with contextlib.suppress(FileNotFoundError):
            os.chmod(handle.name, target.stat().st_mode & 0o7777)
        os.replace(handle.name, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(handle.name)
        raise


def scan_note(path: Path | str, previous: NoteSignature | None = None) -> tuple[NoteSignature, bool]:
    """Fingerprint ``path`` and report whether its content differs from ``previous``.

    The file is only hashed when its size or modification time moved, so
    polling an idle vault costs one ``stat`` per note. A touched file with
    identical bytes is not reported as changed.
    """

    target = Path(path)
    stat = target.stat()
    if previous is not None and (stat.st_mtime_ns, stat.st_size) == (previous.mtime_ns, previous.size):
        return previous, False
    digest = hashlib.blake2b(target.read_bytes(), digest_size=16).hexdigest()
    signature = NoteSignature(mtime_ns=stat.st_mtime_ns, size=stat.st_size, digest=digest)
    return signature, previous is None or digest != previous.digest
