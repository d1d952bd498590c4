from __future__ import annotations

import hashlib
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken

DEFAULT_MODEL = "gpt-5.2"
DEFAULT_ENCODING = "o200k_base"
MODEL_ENV_VAR = "CG_TOKENIZER_MODEL"

Backend = Literal["tiktoken", "approx"]

_ENCODER_CACHE: dict[str, Any] = {}
_ENCODER_CACHE_LOCK = threading.Lock()
_TOKEN_COUNT_CACHE: dict[tuple[str, str, str], int] = {}
_TOKEN_COUNT_CACHE_LOCK = threading.Lock()

_TOKENIZER: TokenCounter | None = None
_TOKENIZER_LOCK = threading.Lock()


class TokenizerInitError(RuntimeError):
    pass


def _approx_tokens(text: str) -> int:
    # Rough heuristic: ~4 characters per token in English-ish source text.
    return (len(text) + 3) // 4 if text else 0


def approx_token_count(text: str) -> int:
    return _approx_tokens(text)


def _get_encoder(name: str) -> Any:
    with _ENCODER_CACHE_LOCK:
        enc = _ENCODER_CACHE.get(name)
        if enc is None:
            enc = tiktoken.get_encoding(name)
            _ENCODER_CACHE[name] = enc
    return enc


def _content_sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_model_name(model: str) -> str:
    dashes = {"‐", "‑", "‒", "–", "—", "−"}
    return "".join("-" if ch in dashes else ch for ch in model.strip().lower())


def resolve_encoding(model: str) -> str:
    """Map a model name to a tiktoken encoding; unknown models use o200k_base."""
    try:
        return tiktoken.encoding_name_for_model(normalize_model_name(model))
    except KeyError:
        return DEFAULT_ENCODING


@dataclass(frozen=True)
class TokenCounter:
    encoding: str = DEFAULT_ENCODING
    backend: Backend = "tiktoken"

    def count(self, text: str) -> int:
        if not text:
            return 0
        key = (self.backend, self.encoding, _content_sha256(text))
        with _TOKEN_COUNT_CACHE_LOCK:
            cached = _TOKEN_COUNT_CACHE.get(key)
        if cached is not None:
            return cached

        if self.backend == "approx":
            result = _approx_tokens(text)
        else:
            # Special-token text such as "<|endoftext|>" counts as one token.
            encoder = _get_encoder(self.encoding)
            result = len(encoder.encode(text, allowed_special="all"))

        with _TOKEN_COUNT_CACHE_LOCK:
            _TOKEN_COUNT_CACHE[key] = result
        return result


def init_tokenizer(
    model: str | None = None,
    backend: Backend = "tiktoken",
    *,
    environ: Mapping[str, str] | None = None,
) -> TokenCounter:
    """Select the process-wide tokenizer.

    The first selection wins. Asking again with the same configuration returns the
    existing instance; asking for a different one raises ``TokenizerInitError``.
    """
    global _TOKENIZER
    env = os.environ if environ is None else environ
    chosen = model or env.get(MODEL_ENV_VAR) or DEFAULT_MODEL
    wanted = TokenCounter(encoding=resolve_encoding(chosen), backend=backend)
    with _TOKENIZER_LOCK:
        if _TOKENIZER is None:
            _TOKENIZER = wanted
        elif _TOKENIZER != wanted:
            raise TokenizerInitError(
                f"tokenizer already initialized as {_TOKENIZER.backend}:"
                f"{_TOKENIZER.encoding}; cannot switch to {backend}:{wanted.encoding}"
            )
        return _TOKENIZER


def get_tokenizer() -> TokenCounter:
    with _TOKENIZER_LOCK:
        current = _TOKENIZER
    if current is not None:
        return current
    return init_tokenizer()


def format_top_files(file_tokens: dict[str, int], top_n: int) -> str:
    if top_n <= 0:
        return ""
    items = sorted(file_tokens.items(), key=lambda kv: kv[1], reverse=True)[:top_n]
    lines = ["Top files by tokens:"]
    for i, (path, n) in enumerate(items, 1):
        lines.append(f"{i:>2}. {path} ({n} tokens)")
    return "\n".join(lines)
