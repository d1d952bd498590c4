from __future__ import annotations

import glob
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pathspec

from .model import FileContent

DEFAULT_MAX_FILE_SIZE = 1024 * 1024
IGNORE_FILENAME = ".contextgatherignore"

DEFAULT_EXCLUDES = [
    ".git/",
    "__pycache__/",
    "*.pyc",
    ".venv/",
    "venv/",
    ".tox/",
    ".pytest_cache/",
    "node_modules/",
]


class InvalidExcludePatterns(ValueError):
    def __init__(self, patterns: Sequence[str]) -> None:
        self.patterns = list(patterns)
        super().__init__(f"every --exclude pattern was invalid: {self.patterns!r}")


@dataclass(frozen=True)
class GatherResult:
    files: list[FileContent]
    skipped: list[tuple[str, str]] = field(default_factory=list)


def expand_paths(patterns: Sequence[str], cwd: Path | None = None) -> list[Path]:
    """Expand shell-style globs; patterns without matches are kept literally."""
    base = cwd or Path.cwd()
    out: list[Path] = []
    for raw in patterns:
        pattern = raw.replace("\\", "/")
        full = pattern if Path(pattern).is_absolute() else str(base / pattern)
        matches = sorted(glob.glob(full, recursive=True))
        if matches:
            out.extend(Path(m) for m in matches)
        else:
            out.append(Path(full))
    return out


def compile_excludes(patterns: Sequence[str]) -> pathspec.PathSpec | None:
    """Compile user exclude globs, dropping invalid ones.

    Raises ``InvalidExcludePatterns`` when patterns were given but none compiled.
    """
    raw = [p.replace("\\", "/") for p in patterns if p.strip()]
    valid: list[str] = []
    for pat in raw:
        try:
            pathspec.PathSpec.from_lines("gitwildmatch", [pat])
        except ValueError:
            continue
        valid.append(pat)
    if raw and not valid:
        raise InvalidExcludePatterns(raw)
    if not valid:
        return None
    return pathspec.PathSpec.from_lines("gitwildmatch", valid)


def _load_ignore_lines(root: Path, filename: str) -> list[str]:
    p = root / filename
    if not p.exists():
        return []
    return p.read_text(encoding="utf-8", errors="replace").splitlines()


def _load_combined_ignore(root: Path, *, respect_gitignore: bool) -> pathspec.PathSpec:
    # Order matters: patterns later in the list take precedence (e.g. negations).
    lines: list[str] = list(DEFAULT_EXCLUDES)
    if respect_gitignore:
        lines.extend(_load_ignore_lines(root, ".gitignore"))
    lines.extend(_load_ignore_lines(root, IGNORE_FILENAME))
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def _walk_dir(root: Path, *, respect_gitignore: bool) -> list[Path]:
    ignore = _load_combined_ignore(root, respect_gitignore=respect_gitignore)
    out: list[Path] = []
    for p in root.rglob("*"):
        if not p.is_file() or p.is_symlink():
            continue
        rel_s = p.relative_to(root).as_posix()
        if ignore.match_file(rel_s):
            continue
        out.append(p)
    return out


def _is_excluded(path: Path, root: Path, exclude: pathspec.PathSpec | None) -> bool:
    if exclude is None:
        return False
    abs_s = path.as_posix()
    try:
        rel_s = path.relative_to(root).as_posix()
    except ValueError:
        rel_s = abs_s
    return exclude.match_file(rel_s) or exclude.match_file(abs_s)


def gather_file_paths(
    paths: Sequence[Path],
    *,
    root: Path,
    exclude: Sequence[str] = (),
    respect_gitignore: bool = True,
) -> list[Path]:
    """Resolve explicit files and walk directories into a sorted, deduplicated list."""
    root = root.resolve()
    exc = compile_excludes(exclude)

    candidates: list[Path] = []
    for p in paths:
        if p.is_dir():
            candidates.extend(_walk_dir(p.resolve(), respect_gitignore=respect_gitignore))
        elif p.is_file():
            candidates.append(p.resolve())

    out = sorted({c for c in candidates if not _is_excluded(c, root, exc)})
    return out


def is_likely_binary(data: bytes) -> bool:
    if not data:
        return False
    sample = data[:4096]
    if b"\x00" in sample:
        return True
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut at the sample boundary is still text.
        truncated = len(data) > len(sample) and e.start >= len(sample) - 3
        return not truncated
    return False


def _display_path(path: Path, root: Path) -> Path:
    try:
        return path.relative_to(root)
    except ValueError:
        return path


def collect_file_data(
    paths: Sequence[Path],
    *,
    root: Path,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> GatherResult:
    """Read text files, skipping oversize and likely-binary ones.

    Files are ordered by folder, then path.
    """
    root = root.resolve()
    files: list[FileContent] = []
    skipped: list[tuple[str, str]] = []
    for path in paths:
        shown = _display_path(path, root)
        try:
            size = path.stat().st_size
            if max_size > 0 and size > max_size:
                skipped.append((shown.as_posix(), f"exceeds {max_size} bytes"))
                continue
            data = path.read_bytes()
        except OSError as e:
            skipped.append((shown.as_posix(), f"unreadable: {e.strerror or e}"))
            continue
        if is_likely_binary(data):
            skipped.append((shown.as_posix(), "binary"))
            continue
        files.append(
            FileContent(
                folder=shown.parent,
                path=shown,
                text=data.decode("utf-8", errors="replace"),
            )
        )
    files.sort(key=lambda f: (f.folder.as_posix(), f.path.as_posix()))
    return GatherResult(files=files, skipped=skipped)
