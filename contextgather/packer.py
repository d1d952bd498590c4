from __future__ import annotations

import warnings
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .escaping import maybe_escape_text
from .model import ChunkBody, FileContent, FileMeta, RenderedBlock
from .render import render_block

CountFn = Callable[[str], int]

MAX_SPLIT_ATTEMPTS = 16


class ChunkBudgetWarning(RuntimeWarning):
    """A unit that cannot be split further was emitted over the chunk size."""


class ConvergenceWarning(RuntimeWarning):
    """A fixed-point iteration hit its ceiling; the last attempt is used."""


@dataclass
class PackState:
    """Greedy accumulator that turns an ordered block stream into chunk bodies."""

    limit: int
    bodies: list[ChunkBody] = field(default_factory=list)
    current: ChunkBody = field(default_factory=ChunkBody)

    def push(self, block: RenderedBlock) -> None:
        if (
            self.limit > 0
            and not self.current.is_empty
            and self.current.tokens + block.tokens > self.limit
        ):
            self.close()
        self.current.add(block)

    def close(self) -> None:
        if not self.current.is_empty:
            self.bodies.append(self.current)
        self.current = ChunkBody()

    def finish(self) -> list[ChunkBody]:
        self.close()
        return self.bodies


def _split_with_total(
    file: FileContent,
    lines: Sequence[str],
    limit: int,
    total: int,
    count_fn: CountFn,
    *,
    escape_xml: bool,
) -> list[str]:
    """Greedily cut ``lines`` into parts assuming ``total`` parts overall."""

    def fits(body: list[str], part: int) -> bool:
        wrapped = render_block(
            file, "".join(body), escape_xml=escape_xml, part=part, total=total
        )
        return count_fn(wrapped) <= limit

    parts: list[str] = []
    current: list[str] = []
    for line in lines:
        if current:
            if fits(current + [line], len(parts) + 1):
                current.append(line)
                continue
            parts.append("".join(current))
        current = [line]
        if not fits(current, len(parts) + 1):
            # A single line over budget becomes its own part.
            parts.append(line)
            current = []
    if current:
        parts.append("".join(current))
    return parts or [""]


def split_file_into_parts(
    file: FileContent,
    body: str,
    limit: int,
    count_fn: CountFn,
    *,
    escape_xml: bool,
) -> list[str]:
    """Split ``body`` into the fewest line-aligned parts whose blocks fit ``limit``.

    The ``part="i/total"`` attribute makes block size depend on the final part
    count, so the split is repeated with the observed count until it is stable.
    """
    lines = body.splitlines(keepends=True)
    target = 1
    parts: list[str] = []
    for _ in range(MAX_SPLIT_ATTEMPTS):
        parts = _split_with_total(
            file, lines, limit, target, count_fn, escape_xml=escape_xml
        )
        if len(parts) == target:
            return parts
        target = len(parts)
    warnings.warn(
        f"splitting {file.path.as_posix()} did not settle after "
        f"{MAX_SPLIT_ATTEMPTS} attempts; using {len(parts)} part(s)",
        ConvergenceWarning,
        stacklevel=2,
    )
    return parts


def _blocks_for_file(
    file_index: int,
    file: FileContent,
    limit: int,
    count_fn: CountFn,
    *,
    escape_xml: bool,
) -> list[RenderedBlock]:
    body = maybe_escape_text(file.text, escape_xml)
    whole = render_block(file, body, escape_xml=escape_xml)
    whole_tokens = count_fn(whole)
    if limit == 0 or whole_tokens <= limit:
        return [RenderedBlock(file_index, 1, 1, whole, whole_tokens)]

    parts = split_file_into_parts(file, body, limit, count_fn, escape_xml=escape_xml)
    total = len(parts)
    blocks: list[RenderedBlock] = []
    for idx, part_body in enumerate(parts, 1):
        wrapped = render_block(
            file, part_body, escape_xml=escape_xml, part=idx, total=total
        )
        # A part may still be over ``limit`` when a single line is; it is kept
        # whole and reported by ``warn_oversize_parts`` once packing settles.
        blocks.append(
            RenderedBlock(file_index, idx, total, wrapped, count_fn(wrapped))
        )
    return blocks


def warn_oversize_parts(
    bodies: Sequence[ChunkBody], metas: Sequence[FileMeta], limit: int
) -> None:
    """Issue a ``ChunkBudgetWarning`` for every block over ``limit`` tokens."""
    for body in bodies:
        for block in body.blocks:
            if block.tokens <= limit:
                continue
            path = metas[block.file_index].path.as_posix()
            warnings.warn(
                f"{path} part {block.part_index}/{block.parts_total} has "
                f"{block.tokens} tokens, over the chunk size {limit}; "
                "emitting it oversize",
                ChunkBudgetWarning,
                stacklevel=3,
            )


def build_chunk_bodies(
    files: Sequence[FileContent],
    limit: int,
    count_fn: CountFn,
    *,
    escape_xml: bool = False,
) -> tuple[list[ChunkBody], list[FileMeta]]:
    """Group rendered file blocks into bodies of at most ``limit`` tokens.

    ``limit == 0`` disables partitioning: one body holding every whole file.
    """
    state = PackState(limit=limit)
    metas: list[FileMeta] = []
    for file_index, file in enumerate(files):
        blocks = _blocks_for_file(
            file_index, file, limit, count_fn, escape_xml=escape_xml
        )
        for block in blocks:
            state.push(block)
        metas.append(
            FileMeta(
                id=file_index,
                path=file.path,
                tokens=sum(b.tokens for b in blocks),
                parts=len(blocks),
            )
        )
    return state.finish(), metas

