from __future__ import annotations

import subprocess
from pathlib import Path

from .model import GitInfo

DEFAULT_MAX_COMMITS = 5


def _git(root: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(root),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=True,
    )
    return result.stdout


def _changed_paths(porcelain: str) -> list[str]:
    out: list[str] = []
    for line in porcelain.splitlines():
        if len(line) < 4:
            continue
        path = line[3:]
        # Renames are reported as "old -> new".
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        out.append(path.strip('"'))
    return out


def collect_git_info(
    root: Path, max_commits: int = DEFAULT_MAX_COMMITS
) -> GitInfo | None:
    """Branch, recent commit subjects and changed paths, or None outside a work tree."""
    try:
        if _git(root, "rev-parse", "--is-inside-work-tree").strip() != "true":
            return None
        branch = _git(root, "rev-parse", "--abbrev-ref", "HEAD").strip()
        try:
            log = _git(root, "log", f"-n{max(0, max_commits)}", "--pretty=format:%s")
        except subprocess.CalledProcessError:
            # Fresh repository without commits.
            log = ""
        status = _git(root, "status", "--porcelain")
    except (FileNotFoundError, subprocess.CalledProcessError):
        return None
    commits = [s for s in log.splitlines() if s.strip()]
    return GitInfo(branch=branch, commits=commits, changed_files=_changed_paths(status))
