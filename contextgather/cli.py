from __future__ import annotations

import argparse
import importlib.metadata as importlib_metadata
import sys
import warnings
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import Config, load_config
from .converge import build_chunks
from .delivery import ClipboardError, copy_to_clipboard, write_stdout
from .gather import (
    InvalidExcludePatterns,
    collect_file_data,
    expand_paths,
    gather_file_paths,
)
from .gitinfo import collect_git_info
from .model import ChunkSet, RenderedChunk
from .tokens import TokenizerInitError, format_top_files, init_tokenizer


def _context_gather_version() -> str:
    try:
        return importlib_metadata.version("context-gather")
    except importlib_metadata.PackageNotFoundError:
        from . import __version__

        return __version__


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="context-gather",
        description=(
            "Gather text file contents into XML-wrapped, token-bounded chunks "
            "for pasting into an LLM context window."
        ),
    )
    p.add_argument(
        "--version",
        action="version",
        version=f"context-gather {_context_gather_version()}",
    )
    p.add_argument(
        "paths",
        nargs="*",
        default=["."],
        help='Files, directories or glob patterns (default: ".")',
    )
    p.add_argument(
        "-c",
        "--chunk-size",
        type=int,
        default=None,
        help="Maximum tokens per chunk; 0 disables chunking (default: config or 0)",
    )
    p.add_argument(
        "--chunk-index",
        type=int,
        default=None,
        help="Chunk to copy to the clipboard (requires --chunk-size; default: 0)",
    )
    p.add_argument("--stdout", action="store_true", help="Print snippets to stdout")
    p.add_argument(
        "--no-clipboard", action="store_true", help="Do not copy to the clipboard"
    )
    p.add_argument(
        "--stream",
        action="store_true",
        help="Step through chunks interactively, copying one at a time",
    )
    p.add_argument(
        "--max-size",
        type=int,
        default=None,
        help="Skip files larger than this many bytes; 0 disables (default: 1 MiB)",
    )
    p.add_argument(
        "--exclude",
        action="append",
        default=None,
        help="Gitignore-style pattern to exclude (repeatable)",
    )
    p.add_argument(
        "--model-context",
        type=int,
        default=None,
        help="Warn when the total token count exceeds this model context size",
    )
    p.add_argument(
        "--escape-xml",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Escape &, < and > inside file contents (default: off via config)",
    )
    p.add_argument(
        "--git-info",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Add branch, recent commits and changed files to the header",
    )
    p.add_argument(
        "--respect-gitignore",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Respect .gitignore when walking directories (default: true)",
    )
    p.add_argument(
        "--tokenizer-model",
        default=None,
        help="Model whose tokenizer counts tokens (default: $CG_TOKENIZER_MODEL)",
    )
    p.add_argument(
        "--tokenizer-backend",
        choices=["tiktoken", "approx"],
        default=None,
        help="Token counting backend (approx: ~4 chars per token, no download)",
    )
    p.add_argument(
        "--print-files",
        action="store_true",
        help="Debug: print selected files to stderr",
    )
    p.add_argument(
        "--top-files",
        type=int,
        default=None,
        help="Print the N largest files by tokens to stderr",
    )
    return p


@dataclass(frozen=True)
class RunOptions:
    chunk_size: int
    chunk_index: int | None
    max_size: int
    exclude: list[str]
    escape_xml: bool
    git_info: bool
    git_max_commits: int
    respect_gitignore: bool
    tokenizer_model: str | None
    tokenizer_backend: str
    model_context: int
    top_files_len: int
    to_stdout: bool
    clipboard: bool


def _pick(cli_value, cfg_value):
    return cfg_value if cli_value is None else cli_value


def _resolve_options(
    cfg: Config, args: argparse.Namespace, parser: argparse.ArgumentParser
) -> RunOptions:
    chunk_size = _pick(args.chunk_size, cfg.chunk_size)
    if chunk_size < 0:
        parser.error("--chunk-size must be >= 0")
    if args.chunk_index is not None:
        if chunk_size == 0:
            parser.error("`--chunk-index` requires `--chunk-size`")
        if args.chunk_index < 0:
            parser.error("--chunk-index must be >= 0")
    max_size = _pick(args.max_size, cfg.max_size)
    if max_size < 0:
        parser.error("--max-size must be >= 0")

    return RunOptions(
        chunk_size=chunk_size,
        chunk_index=args.chunk_index,
        max_size=max_size,
        exclude=list(cfg.exclude) + list(args.exclude or []),
        escape_xml=_pick(args.escape_xml, cfg.escape_xml),
        git_info=_pick(args.git_info, cfg.git_info),
        git_max_commits=cfg.git_max_commits,
        respect_gitignore=_pick(args.respect_gitignore, cfg.respect_gitignore),
        tokenizer_model=_pick(args.tokenizer_model, cfg.tokenizer_model),
        tokenizer_backend=_pick(args.tokenizer_backend, cfg.tokenizer_backend),
        model_context=_pick(args.model_context, cfg.model_context),
        top_files_len=_pick(args.top_files, cfg.top_files_len),
        to_stdout=args.stdout,
        clipboard=not args.no_clipboard,
    )


def _emit_skip_warning(skipped: list[tuple[str, str]]) -> None:
    if not skipped:
        return
    preview = ", ".join(f"{rel} ({reason})" for rel, reason in skipped[:5])
    suffix = "" if len(skipped) <= 5 else ", ..."
    print(
        f"Warning: skipped {len(skipped)} file(s): {preview}{suffix}",
        file=sys.stderr,
    )


def _print_selected_files(chunk_set: ChunkSet) -> None:
    print(f"Debug: selected files ({len(chunk_set.metas)}):", file=sys.stderr)
    for meta in chunk_set.metas:
        print(f"  - {meta.path.as_posix()}", file=sys.stderr)


def _build(files, opts: RunOptions, count_fn, git) -> ChunkSet:
    # Core warnings are reported as CLI warnings, once each.
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", RuntimeWarning)
        chunk_set = build_chunks(
            files,
            opts.chunk_size,
            count_fn=count_fn,
            escape_xml=opts.escape_xml,
            include_git=opts.git_info,
            git_info=git,
        )
    seen: set[str] = set()
    for w in caught:
        msg = str(w.message)
        if msg not in seen:
            seen.add(msg)
            print(f"Warning: {msg}", file=sys.stderr)
    return chunk_set


class _Sink:
    """Delivers snippets; the clipboard is disabled after its first failure."""

    def __init__(self, *, to_stdout: bool, clipboard: bool) -> None:
        self.to_stdout = to_stdout
        self.clipboard = clipboard

    def copy(self, text: str) -> bool:
        if not self.clipboard:
            return False
        try:
            copy_to_clipboard(text)
        except ClipboardError as e:
            print(f"Warning: {e}", file=sys.stderr)
            self.clipboard = False
            return False
        return True

    def show(self, text: str) -> None:
        if self.to_stdout:
            write_stdout(text)


def _stream_chunks(
    chunks: Sequence[RenderedChunk],
    sink: _Sink,
    read: Callable[[], str] = input,
) -> None:
    total = len(chunks)
    last = total - 1
    idx = 0
    print(f"▲ Streaming {total} chunks (0..{last}).", file=sys.stderr)
    while True:
        snippet = chunks[idx].text
        if sink.copy(snippet):
            print(f"✔ copied chunk {idx}", file=sys.stderr)
        sink.show(snippet)
        print(
            f"Enter chunk # (0..{last}) or 'q' to quit: ",
            end="",
            file=sys.stderr,
            flush=True,
        )
        try:
            cmd = read().strip()
        except EOFError:
            break
        if cmd == "q":
            break
        if not cmd:
            idx = (idx + 1) % total
        elif cmd.isdigit() and int(cmd) <= last:
            idx = int(cmd)
        else:
            print(f"Warning: no chunk {cmd!r}; expected 0..{last}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    root = Path.cwd()
    cfg = load_config(root)
    opts = _resolve_options(cfg, args, parser)

    try:
        tokenizer = init_tokenizer(
            opts.tokenizer_model,
            opts.tokenizer_backend,  # type: ignore[arg-type]
        )
    except TokenizerInitError as e:
        parser.error(str(e))

    try:
        paths = gather_file_paths(
            expand_paths(args.paths, root),
            root=root,
            exclude=opts.exclude,
            respect_gitignore=opts.respect_gitignore,
        )
    except InvalidExcludePatterns as e:
        parser.error(str(e))

    gathered = collect_file_data(paths, root=root, max_size=opts.max_size)
    _emit_skip_warning(gathered.skipped)

    git = collect_git_info(root, opts.git_max_commits) if opts.git_info else None
    chunk_set = _build(gathered.files, opts, tokenizer.count, git)
    chunks = chunk_set.chunks

    if args.print_files:
        _print_selected_files(chunk_set)

    if opts.chunk_index is not None and opts.chunk_index >= len(chunks):
        print(
            f"⚠  --chunk-index {opts.chunk_index} out of range "
            f"(0..{len(chunks) - 1})",
            file=sys.stderr,
        )
        raise SystemExit(3)

    sink = _Sink(to_stdout=opts.to_stdout, clipboard=opts.clipboard)
    if args.stream:
        _stream_chunks(chunks, sink)
        return

    copy_idx = opts.chunk_index
    if copy_idx is None and opts.clipboard:
        copy_idx = 0
    copied: int | None = None
    for chunk in chunks:
        sink.show(chunk.text)
        if chunk.index == copy_idx and sink.copy(chunk.text):
            copied = chunk.index

    total_tokens = chunk_set.total_tokens
    noun = "chunk" if len(chunks) == 1 else "chunks"
    print(
        f"✔ {len(chunk_set.metas)} files • {total_tokens} tokens • "
        f"{len(chunks)} {noun} • copied={'none' if copied is None else copied}",
        file=sys.stderr,
    )
    if not opts.clipboard and not opts.to_stdout:
        print(
            "Note: neither --stdout nor clipboard copy requested; nothing visible.",
            file=sys.stderr,
        )
    if opts.top_files_len > 0:
        top = format_top_files(
            {m.path.as_posix(): m.tokens for m in chunk_set.metas},
            opts.top_files_len,
        )
        print(top, file=sys.stderr)
    if opts.model_context > 0 and total_tokens > opts.model_context:
        print(
            f"Warning: token count {total_tokens} exceeds model context limit "
            f"{opts.model_context}",
            file=sys.stderr,
        )
