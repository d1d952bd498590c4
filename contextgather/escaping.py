from __future__ import annotations

_TEXT_ESCAPES = (("&", "&amp;"), ("<", "&lt;"), (">", "&gt;"))
_ATTR_BREAKING = frozenset('&<>"')


def escape_text(text: str) -> str:
    for raw, escaped in _TEXT_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def escape_attr(value: str) -> str:
    return escape_text(value).replace('"', "&quot;")


def maybe_escape_text(text: str, escape_xml: bool) -> str:
    return escape_text(text) if escape_xml else text


def maybe_escape_attr(value: str, escape_xml: bool) -> str:
    # Attributes must stay well-formed even when body escaping is off.
    if escape_xml or any(ch in _ATTR_BREAKING for ch in value):
        return escape_attr(value)
    return value
