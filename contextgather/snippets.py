from __future__ import annotations

from collections.abc import Sequence

OPEN_CONTEXT = "<shared-context>\n"
CLOSE_CONTEXT = "</shared-context>\n"


def _trailer(remaining: int) -> str:
    return f'<more remaining="{remaining}"/>\n' if remaining > 0 else CLOSE_CONTEXT


def render_chunk_snippet(header: str, bodies: Sequence[str], idx: int) -> str:
    """Render chunk ``idx`` exactly as it is printed or copied.

    Chunk 0 is the header; chunk ``i > 0`` wraps ``bodies[i - 1]``.
    """
    total = len(bodies) + 1
    remaining = total - idx - 1
    if idx == 0:
        return f"{OPEN_CONTEXT}{header}{_trailer(remaining)}"
    return (
        f'<context-chunk id="{idx}/{total}">\n{bodies[idx - 1]}</context-chunk>\n'
        f"{_trailer(remaining)}"
    )
