# git.py
# Thin wrapper around the Git CLI.
# Everything that needs repository facts (branch, sha, remote) goes
# through here instead of calling subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises subprocess.CalledProcessError on a non-zero exit and
    FileNotFoundError when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of the HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_branch(cwd: Optional[str | Path] = None) -> Optional[str]:
    """
    Name of the checked-out branch.

    Returns None on a detached HEAD, where there is no branch a push
    could target.
    """
    name = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if name == "HEAD":
        return None
    return name


def get_current_ref(cwd: Optional[str | Path] = None) -> str:
    """Current branch name, or the HEAD sha when detached."""
    return current_branch(cwd) or head_sha(cwd)


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    """URL configured for `remote`."""
    return _git(["remote", "get-url", remote], cwd=cwd)
