from __future__ import annotations

from pathlib import Path

import pytest

from contextgather import cli
from contextgather.cli import _Sink, _stream_chunks, main
from contextgather.delivery import ClipboardError
from contextgather.gather import InvalidExcludePatterns
from contextgather.model import GitInfo, RenderedChunk
from contextgather.tokens import MODEL_ENV_VAR

APPROX = ["--tokenizer-backend", "approx"]


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "a.txt").write_text("alpha\nbeta\n", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.txt").write_text("gamma\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(MODEL_ENV_VAR, raising=False)
    return tmp_path


@pytest.fixture
def clipboard(monkeypatch) -> list[str]:
    copied: list[str] = []
    monkeypatch.setattr(cli, "copy_to_clipboard", copied.append)
    return copied


def test_unchunked_stdout(project: Path, capsys) -> None:
    main([*APPROX, "--stdout", "--no-clipboard"])

    captured = capsys.readouterr()
    assert '<file-contents path="a.txt" name="a.txt" folder=".">\n' in captured.out
    assert '<file-contents path="sub/b.txt" name="b.txt" folder="sub">\n' in captured.out
    assert "<shared-context" not in captured.out
    assert "✔ 2 files" in captured.err
    assert "1 chunk " in captured.err
    assert "copied=none" in captured.err


def test_chunked_stdout(project: Path, capsys) -> None:
    main([*APPROX, "-c", "1000", "--stdout", "--no-clipboard"])

    out = capsys.readouterr().out
    assert out.startswith("<shared-context>\n<shared-context-header ")
    assert '<context-chunk id="1/2">\n' in out
    assert out.endswith("</context-chunk>\n</shared-context>\n")


def test_header_over_budget_is_reported(project: Path, capsys) -> None:
    main([*APPROX, "-c", "60", "--no-clipboard"])

    assert "Warning: header has" in capsys.readouterr().err


def test_default_copies_first_chunk(project: Path, clipboard, capsys) -> None:
    main(APPROX)

    assert len(clipboard) == 1
    assert clipboard[0].startswith('    <file-contents path="a.txt"')
    err = capsys.readouterr().err
    assert "copied=0" in err


def test_chunk_index_selects_copied_chunk(project: Path, clipboard, capsys) -> None:
    main([*APPROX, "-c", "1000", "--chunk-index", "1"])

    assert len(clipboard) == 1
    assert clipboard[0].startswith('<context-chunk id="1/2">\n')
    assert "copied=1" in capsys.readouterr().err


def test_clipboard_failure_is_a_warning(project: Path, monkeypatch, capsys) -> None:
    def _fail(_: str) -> None:
        raise ClipboardError("clipboard unavailable: no backend")

    monkeypatch.setattr(cli, "copy_to_clipboard", _fail)

    main(APPROX)

    err = capsys.readouterr().err
    assert "Warning: clipboard unavailable: no backend" in err
    assert "copied=none" in err


@pytest.mark.parametrize(
    "argv",
    [
        ["--chunk-index", "1"],
        ["-c", "-5"],
        ["-c", "100", "--chunk-index", "-1"],
        ["--max-size", "-1"],
    ],
)
def test_invalid_arguments_exit_2(project: Path, argv: list[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([*APPROX, *argv])
    assert excinfo.value.code == 2


def test_chunk_index_out_of_range_exits_3(project: Path, clipboard, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([*APPROX, "-c", "1000", "--chunk-index", "5"])

    assert excinfo.value.code == 3
    assert "--chunk-index 5 out of range (0..1)" in capsys.readouterr().err
    assert clipboard == []


def test_invalid_excludes_exit_2(project: Path, monkeypatch) -> None:
    def _bad(*_: object, **__: object):
        raise InvalidExcludePatterns(["["])

    monkeypatch.setattr(cli, "gather_file_paths", _bad)

    with pytest.raises(SystemExit) as excinfo:
        main([*APPROX, "--exclude", "["])
    assert excinfo.value.code == 2


def test_git_info_in_header(project: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        cli,
        "collect_git_info",
        lambda root, max_commits: GitInfo("main", ["Initial commit"], ["a.txt"]),
    )

    main([*APPROX, "-c", "100000", "--git-info", "--stdout", "--no-clipboard"])

    out = capsys.readouterr().out
    assert '<git-info branch="main">' in out
    assert "<commit>Initial commit</commit>" in out


def test_config_file_sets_chunk_size(project: Path, capsys) -> None:
    (project / "context-gather.toml").write_text(
        "[context-gather]\nchunk_size = 1000\n", encoding="utf-8"
    )

    main([*APPROX, "--stdout", "--no-clipboard", "sub"])

    out = capsys.readouterr().out
    assert "<shared-context>" in out
    assert 'path="sub/b.txt"' in out
    assert 'path="a.txt"' not in out


def test_diagnostics(project: Path, capsys) -> None:
    main(
        [
            *APPROX,
            "--no-clipboard",
            "--print-files",
            "--top-files",
            "1",
            "--model-context",
            "1",
        ]
    )

    err = capsys.readouterr().err
    assert "Debug: selected files (2):" in err
    assert "Top files by tokens:" in err
    assert "exceeds model context limit 1" in err
    assert "Note: neither --stdout nor clipboard copy requested" in err


def test_skipped_files_are_reported(project: Path, capsys) -> None:
    (project / "blob.bin").write_bytes(b"\x00\x01")

    main([*APPROX, "--no-clipboard"])

    assert "Warning: skipped 1 file(s): blob.bin (binary)" in capsys.readouterr().err


def test_version(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--version"])
    assert excinfo.value.code == 0
    assert capsys.readouterr().out.startswith("context-gather ")


def _chunks(n: int) -> list[RenderedChunk]:
    return [RenderedChunk(i, f"chunk-{i}", 1) for i in range(n)]


def test_stream_navigation(clipboard, capsys) -> None:
    answers = iter(["", "0", "9", "q"])

    _stream_chunks(
        _chunks(3), _Sink(to_stdout=False, clipboard=True), read=lambda: next(answers)
    )

    assert clipboard == ["chunk-0", "chunk-1", "chunk-0", "chunk-0"]
    err = capsys.readouterr().err
    assert "▲ Streaming 3 chunks (0..2)." in err
    assert "Warning: no chunk '9'" in err


def test_stream_wraps_and_stops_on_eof(clipboard, capsys) -> None:
    answers = iter(["", ""])

    def _read() -> str:
        try:
            return next(answers)
        except StopIteration:
            raise EOFError from None

    _stream_chunks(_chunks(2), _Sink(to_stdout=True, clipboard=True), read=_read)

    assert clipboard == ["chunk-0", "chunk-1", "chunk-0"]
    assert capsys.readouterr().out == "chunk-0chunk-1chunk-0"
