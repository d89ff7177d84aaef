# trigger.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from .git_facts.git import current_branch, head_sha
from .model import PULL_REQUEST, PUSH, Pipeline, TriggerEvent, normalize_kind


def should_trigger(event: TriggerEvent, pipeline: Pipeline) -> bool:
    """True iff `event` starts a Run of `pipeline`. No side effects."""
    return event.kind in pipeline.events and event.branch in pipeline.branches


def event_from_github(event_name: str, payload: Dict[str, Any]) -> TriggerEvent:
    """
    Build a TriggerEvent from a GitHub webhook / GITHUB_EVENT_PATH payload.

    push:         target branch is payload["ref"] (refs/heads/<branch>)
    pull_request: target branch is the base branch of the PR
    """
    kind = normalize_kind(event_name)

    if kind == PUSH:
        ref = payload.get("ref")
        if not ref:
            raise ValueError("push payload has no 'ref'")
        return TriggerEvent(kind=PUSH, branch=ref, ref=ref, sha=payload.get("after"))

    pr = payload.get("pull_request") or {}
    base = (pr.get("base") or {}).get("ref")
    if not base:
        raise ValueError("pull_request payload has no 'pull_request.base.ref'")
    head = pr.get("head") or {}
    return TriggerEvent(
        kind=PULL_REQUEST,
        branch=base,
        ref=head.get("ref"),
        sha=head.get("sha"),
    )


def event_from_git(kind: str, cwd: Optional[str | Path] = None) -> TriggerEvent:
    """
    Describe the local checkout as a TriggerEvent of `kind`.

    For a push the target is the current branch. Raises ValueError on a
    detached HEAD.
    """
    branch = current_branch(cwd)
    if branch is None:
        raise ValueError("HEAD is detached; pass the target branch explicitly")
    return TriggerEvent(kind=kind, branch=branch, ref=branch, sha=head_sha(cwd))
