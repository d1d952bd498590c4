from __future__ import annotations

import sys

import pyperclip


class ClipboardError(RuntimeError):
    pass


def copy_to_clipboard(text: str) -> None:
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise ClipboardError(f"clipboard unavailable: {e}") from e


def write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()
