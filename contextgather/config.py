from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from .gather import DEFAULT_MAX_FILE_SIZE
from .gitinfo import DEFAULT_MAX_COMMITS

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # pyright: ignore[reportMissingImports]

CONFIG_FILENAMES: tuple[str, ...] = (".context-gather.toml", "context-gather.toml")
PYPROJECT_FILENAME = "pyproject.toml"
SECTION = "context-gather"


@dataclass
class Config:
    # Token budget per chunk; 0 disables chunking.
    chunk_size: int = 0
    # Files larger than this many bytes are skipped; <=0 disables the limit.
    max_size: int = DEFAULT_MAX_FILE_SIZE
    exclude: list[str] = field(default_factory=list)
    escape_xml: bool = False
    git_info: bool = False
    git_max_commits: int = DEFAULT_MAX_COMMITS
    # None defers to CG_TOKENIZER_MODEL, then the built-in default model.
    tokenizer_model: str | None = None
    tokenizer_backend: Literal["tiktoken", "approx"] = "tiktoken"
    respect_gitignore: bool = True
    # Warn when total output tokens exceed this; 0 disables the check.
    model_context: int = 0
    top_files_len: int = 0


def _find_config_path(root: Path) -> Path | None:
    root = root.resolve()
    for name in CONFIG_FILENAMES:
        p = root / name
        if p.exists():
            return p
    pyproject = root / PYPROJECT_FILENAME
    if pyproject.exists():
        return pyproject
    return None


def _extract_section(data: Any, *, from_pyproject: bool) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}

    if not from_pyproject:
        # Preferred for dedicated config files: [context-gather]
        own = data.get(SECTION)
        if isinstance(own, dict):
            return own

    tool = data.get("tool")
    if isinstance(tool, dict):
        nested = tool.get(SECTION)
        if isinstance(nested, dict):
            return nested

    return {}


def _int_or(value: Any, default: int, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n >= minimum else default


def load_config(root: Path) -> Config:
    cfg_path = _find_config_path(root)
    if cfg_path is None:
        return Config()

    data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    section = _extract_section(data, from_pyproject=cfg_path.name == PYPROJECT_FILENAME)
    cfg = Config()

    cfg.chunk_size = _int_or(section.get("chunk_size"), cfg.chunk_size)
    cfg.max_size = _int_or(section.get("max_size"), cfg.max_size)
    cfg.git_max_commits = _int_or(section.get("git_max_commits"), cfg.git_max_commits)
    cfg.model_context = _int_or(section.get("model_context"), cfg.model_context)
    cfg.top_files_len = _int_or(section.get("top_files_len"), cfg.top_files_len)

    exc = section.get("exclude", cfg.exclude)
    if isinstance(exc, list):
        cfg.exclude = [str(x) for x in exc]

    cfg.escape_xml = bool(section.get("escape_xml", cfg.escape_xml))
    cfg.git_info = bool(section.get("git_info", cfg.git_info))
    cfg.respect_gitignore = bool(
        section.get("respect_gitignore", cfg.respect_gitignore)
    )

    model = section.get("tokenizer_model")
    if isinstance(model, str) and model.strip():
        cfg.tokenizer_model = model.strip()

    backend = section.get("tokenizer_backend", cfg.tokenizer_backend)
    if isinstance(backend, str):
        backend = backend.strip().lower()
        if backend in {"tiktoken", "approx"}:
            cfg.tokenizer_backend = backend  # type: ignore[assignment]

    return cfg
