"""Frontmatter split/load/dump helpers backed by ``ruamel.yaml`` round-trip mode."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Optional

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap
from ruamel.yaml.error import YAMLError

__all__ = ["FrontmatterDocument", "split_frontmatter", "load_frontmatter", "dump_frontmatter", "render_document"]

LOGGER = logging.getLogger(__name__)
_FENCE = "---"


@dataclass(slots=True)
class FrontmatterDocument:
    """A Markdown document split into its frontmatter block and body."""

    block: Optional[str]
    body: str
    newline: str = "\n"
    bom: bool = False

    @property
    def has_frontmatter(self) -> bool:
        return self.block is not None


def split_frontmatter(text: str) -> FrontmatterDocument:
    """Return the fenced ``---`` block (without fences) and the untouched body."""

    bom = text.startswith("\ufeff")
    working = text[1:] if bom else text
    newline = "\r\n" if "\r\n" in working else "\n"
    lines = working.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n").strip() != _FENCE:
        return FrontmatterDocument(block=None, body=working, newline=newline, bom=bom)

    for index, line in enumerate(lines[1:], start=1):
        if line.rstrip("\r\n").strip() == _FENCE:
            block = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            return FrontmatterDocument(block=block, body=body, newline=newline, bom=bom)
    return FrontmatterDocument(block=None, body=working, newline=newline, bom=bom)


def _yaml() -> YAML:
    parser = YAML(typ="rt")
    parser.preserve_quotes = True
    parser.allow_duplicate_keys = False
    parser.default_flow_style = False
    parser.width = 4096
    return parser


def load_frontmatter(block: Optional[str], *, strict: bool = False) -> CommentedMap:
    """Parse a frontmatter block into a round-trip mapping.

    Empty blocks give an empty map. Invalid YAML and non-mapping blocks also
    give an empty map, unless ``strict`` is set: then they raise
    ``ValueError`` so a caller about to rewrite the block never replaces
    content it could not read.
    """

    if not block or not block.strip():
        return CommentedMap()
    try:
        loaded = _yaml().load(block)
    except YAMLError as exc:
        if strict:
            raise ValueError(f"Unparseable frontmatter: {exc}") from exc
        LOGGER.warning("Ignoring unparseable frontmatter: %s", exc)
        return CommentedMap()
    if isinstance(loaded, CommentedMap):
        return loaded
    if isinstance(loaded, dict):
        return CommentedMap(loaded)
    if loaded is None:
        return CommentedMap()
    if strict:
        raise ValueError(f"Frontmatter is a {type(loaded).__name__}, not a mapping")
    return CommentedMap()


def dump_frontmatter(data: Any) -> str:
    if not data:
        return ""
    stream = io.StringIO()
    _yaml().dump(data, stream)
    return stream.getvalue()


def render_document(data: Any, document: FrontmatterDocument) -> str:
    """Rebuild the document text with ``data`` as its frontmatter and the original body."""

    newline = document.newline
    block = dump_frontmatter(data)
    if newline != "\n":
        block = block.replace("\n", newline)
    prefix = "\ufeff" if document.bom else ""
    if not block and not document.has_frontmatter:
        return prefix + document.body
    return f"{prefix}{_FENCE}{newline}{block}{_FENCE}{newline}{document.body}"
