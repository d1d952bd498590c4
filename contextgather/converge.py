from __future__ import annotations

import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from .header import make_header
from .model import ChunkBody, ChunkSet, FileContent, FileMeta, GitInfo, RenderedChunk
from .packer import (
    ChunkBudgetWarning,
    ConvergenceWarning,
    CountFn,
    build_chunk_bodies,
    warn_oversize_parts,
)
from .snippets import render_chunk_snippet

MAX_PASSES = 8


@dataclass(frozen=True)
class _HeaderOptions:
    generated_at: datetime
    escape_xml: bool
    include_git: bool
    git_info: GitInfo | None


@dataclass(frozen=True)
class _Settled:
    chunks: list[RenderedChunk]
    next_limit: int | None  # set when the caller should repack with a smaller budget
    header_oversize: bool
    oversize_chunks: list[int]
    stuck: bool  # block detaching ran out of room


def _render_all(
    bodies: Sequence[ChunkBody],
    metas: Sequence[FileMeta],
    limit: int,
    opts: _HeaderOptions,
    count_fn: CountFn,
) -> list[RenderedChunk]:
    header = make_header(
        len(bodies) + 1,
        limit,
        metas,
        generated_at=opts.generated_at,
        escape_xml=opts.escape_xml,
        include_git=opts.include_git,
        git_info=opts.git_info,
    )
    texts = [b.text for b in bodies]
    chunks: list[RenderedChunk] = []
    for idx in range(len(texts) + 1):
        snippet = render_chunk_snippet(header, texts, idx)
        chunks.append(RenderedChunk(idx, snippet, count_fn(snippet)))
    return chunks


def _settle(
    bodies: list[ChunkBody],
    metas: Sequence[FileMeta],
    limit: int,
    effective_limit: int,
    opts: _HeaderOptions,
    count_fn: CountFn,
) -> _Settled:
    """Detach trailing blocks from oversize chunks until only single units remain."""
    max_splits = sum(len(b.blocks) for b in bodies)
    splits = 0
    while True:
        chunks = _render_all(bodies, metas, limit, opts, count_fn)
        header_oversize = chunks[0].tokens > limit

        split_at: int | None = None
        oversize: list[int] = []
        required: int | None = None
        for chunk in chunks[1:]:
            if chunk.tokens <= limit:
                continue
            body = bodies[chunk.index - 1]
            if len(body.blocks) > 1:
                split_at = chunk.index - 1
                break
            oversize.append(chunk.index)
            overhead = max(0, chunk.tokens - body.tokens)
            candidate = limit - overhead
            required = candidate if required is None else min(required, candidate)

        if split_at is not None and splits < max_splits:
            tail = ChunkBody()
            tail.add(bodies[split_at].pop_last())
            bodies.insert(split_at + 1, tail)
            splits += 1
            continue

        next_limit = None
        if required is not None and 0 < required < effective_limit:
            next_limit = required
        return _Settled(
            chunks=chunks,
            next_limit=next_limit,
            header_oversize=header_oversize,
            oversize_chunks=oversize,
            stuck=split_at is not None,
        )


def _unchunked(
    files: Sequence[FileContent], count_fn: CountFn, escape_xml: bool
) -> ChunkSet:
    bodies, metas = build_chunk_bodies(files, 0, count_fn, escape_xml=escape_xml)
    text = "".join(b.text for b in bodies)
    return ChunkSet(chunks=[RenderedChunk(0, text, count_fn(text))], metas=metas)


def build_chunks(
    files: Sequence[FileContent],
    limit: int,
    *,
    count_fn: CountFn,
    escape_xml: bool = False,
    include_git: bool = False,
    git_info: GitInfo | None = None,
    generated_at: datetime | None = None,
    max_passes: int = MAX_PASSES,
) -> ChunkSet:
    """Pack ``files`` into rendered chunks of at most ``limit`` tokens each.

    Chunk 0 is the manifest header. Boundary markers and the header count against
    the same budget, and their size depends on the chunk count, so packing is
    repeated with a shrinking effective limit until every splittable chunk fits.
    Units that cannot fit are emitted whole with a ``ChunkBudgetWarning``.

    ``limit == 0`` disables chunking: a single chunk holding every file block,
    without header or markers.
    """
    if limit < 0:
        raise ValueError(f"chunk size must be >= 0, got {limit}")
    if limit == 0:
        return _unchunked(files, count_fn, escape_xml)

    opts = _HeaderOptions(
        generated_at=generated_at or datetime.now(timezone.utc),
        escape_xml=escape_xml,
        include_git=include_git,
        git_info=git_info,
    )
    effective_limit = limit
    converged = False
    for _ in range(max(1, max_passes)):
        bodies, metas = build_chunk_bodies(
            files, effective_limit, count_fn, escape_xml=escape_xml
        )
        settled = _settle(bodies, metas, limit, effective_limit, opts, count_fn)
        if settled.next_limit is None:
            converged = True
            break
        effective_limit = settled.next_limit

    # Only the emitted attempt is reported, and always against ``limit``.
    if not converged:
        warnings.warn(
            f"chunk packing did not converge after {max_passes} passes; "
            "using the last attempt",
            ConvergenceWarning,
            stacklevel=2,
        )
    if settled.stuck:
        warnings.warn(
            "chunk splitting stopped after detaching every block; "
            "some chunks may exceed the chunk size",
            ConvergenceWarning,
            stacklevel=2,
        )
    if settled.header_oversize:
        warnings.warn(
            f"header has {settled.chunks[0].tokens} tokens, over the chunk size "
            f"{limit}; increase --chunk-size or disable git info",
            ChunkBudgetWarning,
            stacklevel=2,
        )
    warn_oversize_parts(bodies, metas, limit)
    if settled.oversize_chunks:
        ids = ", ".join(str(i) for i in settled.oversize_chunks)
        warnings.warn(
            f"chunk(s) {ids} exceed the chunk size {limit} due to oversize "
            "file parts",
            ChunkBudgetWarning,
            stacklevel=2,
        )
    return ChunkSet(chunks=settled.chunks, metas=metas)
