from __future__ import annotations

import pytest

import contextgather.tokens as tokens


@pytest.fixture(autouse=True)
def _reset_tokenizer(monkeypatch) -> None:
    # The tokenizer is process-wide; every test starts without a selection.
    monkeypatch.setattr(tokens, "_TOKENIZER", None)
