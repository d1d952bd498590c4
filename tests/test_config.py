from __future__ import annotations

from pathlib import Path

from contextgather.config import Config, load_config
from contextgather.gather import DEFAULT_MAX_FILE_SIZE


def test_config_defaults() -> None:
    """Test that Config has correct default values."""
    cfg = Config()
    assert cfg.chunk_size == 0
    assert cfg.max_size == DEFAULT_MAX_FILE_SIZE
    assert cfg.exclude == []
    assert cfg.escape_xml is False
    assert cfg.git_info is False
    assert cfg.git_max_commits == 5
    assert cfg.tokenizer_model is None
    assert cfg.tokenizer_backend == "tiktoken"
    assert cfg.respect_gitignore is True
    assert cfg.model_context == 0
    assert cfg.top_files_len == 0


def test_load_config_missing_file(tmp_path: Path) -> None:
    assert load_config(tmp_path) == Config()


def test_load_config_empty_file(tmp_path: Path) -> None:
    (tmp_path / "context-gather.toml").write_text("", encoding="utf-8")
    assert load_config(tmp_path) == Config()


def test_load_config_custom_values(tmp_path: Path) -> None:
    """Test loading config with custom values."""
    (tmp_path / ".context-gather.toml").write_text(
        """[context-gather]
chunk_size = 40000
max_size = 2048
exclude = ["*.lock", "dist/**"]
escape_xml = true
git_info = true
git_max_commits = 3
tokenizer_model = "gpt-4o"
tokenizer_backend = "APPROX"
respect_gitignore = false
model_context = 128000
top_files_len = 7
""",
        encoding="utf-8",
    )

    cfg = load_config(tmp_path)
    assert cfg.chunk_size == 40000
    assert cfg.max_size == 2048
    assert cfg.exclude == ["*.lock", "dist/**"]
    assert cfg.escape_xml is True
    assert cfg.git_info is True
    assert cfg.git_max_commits == 3
    assert cfg.tokenizer_model == "gpt-4o"
    assert cfg.tokenizer_backend == "approx"
    assert cfg.respect_gitignore is False
    assert cfg.model_context == 128000
    assert cfg.top_files_len == 7


def test_load_config_from_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """[project]
name = "demo"

[tool.context-gather]
chunk_size = 500
""",
        encoding="utf-8",
    )
    assert load_config(tmp_path).chunk_size == 500


def test_dedicated_file_wins_over_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        "[tool.context-gather]\nchunk_size = 500\n", encoding="utf-8"
    )
    (tmp_path / "context-gather.toml").write_text(
        "[context-gather]\nchunk_size = 900\n", encoding="utf-8"
    )
    assert load_config(tmp_path).chunk_size == 900


def test_load_config_invalid_values_keep_defaults(tmp_path: Path) -> None:
    """Invalid values should keep defaults."""
    (tmp_path / "context-gather.toml").write_text(
        """[context-gather]
chunk_size = "not a number"
max_size = -5
git_max_commits = true
exclude = "not a list"
tokenizer_model = "   "
tokenizer_backend = "sentencepiece"
""",
        encoding="utf-8",
    )

    cfg = load_config(tmp_path)
    assert cfg.chunk_size == 0
    assert cfg.max_size == DEFAULT_MAX_FILE_SIZE
    assert cfg.git_max_commits == 5
    assert cfg.exclude == []
    assert cfg.tokenizer_model is None
    assert cfg.tokenizer_backend == "tiktoken"
