from __future__ import annotations

from pathlib import Path

from .escaping import maybe_escape_attr
from .model import FileContent

BLOCK_INDENT = "    "
_PART_CLOSE_TAG = f"{BLOCK_INDENT}</file-contents>\n"
_CLOSE_TAG = f"\n{_PART_CLOSE_TAG}"


def _display(path: Path) -> str:
    s = path.as_posix()
    return s if s else "."


def render_block(
    file: FileContent,
    body: str,
    *,
    escape_xml: bool,
    part: int | None = None,
    total: int | None = None,
) -> str:
    """Wrap ``body`` (already escaped if needed) in a ``<file-contents>`` block.

    ``part``/``total`` are given only for split files and add ``part="i/total"``.
    Parts keep their own line endings, so no newline is added before the closing
    tag; a whole file always gets one.
    """
    path_attr = maybe_escape_attr(_display(file.path), escape_xml)
    name_attr = maybe_escape_attr(file.path.name, escape_xml)
    folder_attr = maybe_escape_attr(_display(file.folder), escape_xml)
    if part is None:
        return (
            f'{BLOCK_INDENT}<file-contents path="{path_attr}" name="{name_attr}" '
            f'folder="{folder_attr}">\n{body}{_CLOSE_TAG}'
        )
    return (
        f'{BLOCK_INDENT}<file-contents path="{path_attr}" name="{name_attr}" '
        f'folder="{folder_attr}" part="{part}/{total}">\n{body}{_PART_CLOSE_TAG}'
    )


def strip_block(block: str) -> str:
    """Return the body of a block produced by ``render_block``."""
    start = block.index(">\n") + 2
    # Attribute values escape '"', so ' part="' only occurs as the part attribute.
    close = _PART_CLOSE_TAG if ' part="' in block[:start] else _CLOSE_TAG
    return block[start : block.rindex(close)]
