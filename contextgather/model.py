from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class FileContent:
    """One gathered source file. ``path`` is the display path (usually relative)."""

    folder: Path
    path: Path
    text: str


@dataclass(frozen=True)
class RenderedBlock:
    """A whole file, or one contiguous line range of it, wrapped for output."""

    file_index: int  # position of the source file in the input list
    part_index: int  # 1-based
    parts_total: int
    text: str
    tokens: int


@dataclass(frozen=True)
class FileMeta:
    id: int
    path: Path
    tokens: int
    parts: int


@dataclass
class ChunkBody:
    """Blocks collected for one chunk, before boundary markers are added."""

    blocks: list[RenderedBlock] = field(default_factory=list)
    tokens: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.blocks

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.blocks)

    def add(self, block: RenderedBlock) -> None:
        self.blocks.append(block)
        self.tokens += block.tokens

    def pop_last(self) -> RenderedBlock:
        block = self.blocks.pop()
        self.tokens = max(0, self.tokens - block.tokens)
        return block


@dataclass(frozen=True)
class RenderedChunk:
    index: int
    text: str  # the on-wire snippet, markers included
    tokens: int


@dataclass(frozen=True)
class GitInfo:
    branch: str
    commits: list[str]
    changed_files: list[str]


@dataclass(frozen=True)
class ChunkSet:
    chunks: list[RenderedChunk]
    metas: list[FileMeta]

    @property
    def total_tokens(self) -> int:
        return sum(c.tokens for c in self.chunks)
