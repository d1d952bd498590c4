from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from .escaping import maybe_escape_attr, maybe_escape_text
from .model import FileMeta, GitInfo

HEADER_VERSION = "1"
GIT_UNAVAILABLE_COMMENT = "  <!-- git info unavailable -->\n"


def format_timestamp(moment: datetime) -> str:
    """RFC 3339 in UTC with seconds precision, e.g. ``2024-05-01T12:00:00Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _file_map(metas: Sequence[FileMeta], escape_xml: bool) -> str:
    rows = [f'  <file-map total-files="{len(metas)}">\n']
    for m in metas:
        path = maybe_escape_attr(m.path.as_posix(), escape_xml)
        rows.append(
            f'    <file id="{m.id}" path="{path}" tokens="{m.tokens}" '
            f'parts="{m.parts}"/>\n'
        )
    rows.append("  </file-map>\n")
    return "".join(rows)


def _instructions(total_chunks: int) -> str:
    return (
        "  <instructions>\n"
        f"    You will receive {total_chunks} chunks (including this header). "
        "Study these carefully, your understanding of the shared context is "
        "critical to your ability to help the user with their task.\n"
        "    Reassemble split files in <file-map> order using their part numbers.\n"
        '    Respond "READY" after the final chunk after you have read and '
        "understood the shared context.\n"
        "  </instructions>\n"
    )


def _git_section(git_info: GitInfo | None, escape_xml: bool) -> str:
    if git_info is None:
        return GIT_UNAVAILABLE_COMMENT
    branch = maybe_escape_attr(git_info.branch, escape_xml)
    out = [f'  <git-info branch="{branch}">\n']
    for subject in git_info.commits:
        out.append(f"    <commit>{maybe_escape_text(subject, escape_xml)}</commit>\n")
    out.append("  </git-info>\n")
    out.append("  <changed-files>\n")
    for path in git_info.changed_files:
        out.append(f'    <file path="{maybe_escape_attr(path, escape_xml)}"/>\n')
    out.append("  </changed-files>\n")
    return "".join(out)


def make_header(
    total_chunks: int,
    limit: int,
    metas: Sequence[FileMeta],
    *,
    generated_at: datetime,
    escape_xml: bool = False,
    include_git: bool = False,
    git_info: GitInfo | None = None,
) -> str:
    """Render the ``<shared-context-header>`` manifest advertised in chunk 0."""
    git = _git_section(git_info, escape_xml) if include_git else ""
    return (
        f'<shared-context-header version="{HEADER_VERSION}" '
        f'total-chunks="{total_chunks}" chunk-size="{limit}" '
        f'generated-at="{format_timestamp(generated_at)}">\n'
        f"{_file_map(metas, escape_xml)}"
        f"{_instructions(total_chunks)}"
        f"{git}"
        "</shared-context-header>\n"
    )
