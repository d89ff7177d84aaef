"""
Read and write GitHub Actions workflow files.

Only the subset a verification pipeline needs is supported: push and
pull_request branch filters, workflow-level env, one job with an
`os` matrix, and `run` steps. `actions/checkout` is implied by
workspace preparation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from .dsl import pipeline as make_pipeline
from .model import EVENT_KINDS, Pipeline, Step

CHECKOUT_ACTION = "actions/checkout@v4"


def _triggers(workflow: Dict[Any, Any]) -> Dict[str, Any]:
    # PyYAML (YAML 1.1) loads the bare key `on` as boolean True
    on = workflow.get("on", workflow.get(True))
    if on is None:
        raise ValueError("workflow has no 'on' section")
    if isinstance(on, str):
        return {on: None}
    if isinstance(on, list):
        return {k: None for k in on}
    return dict(on)


def load_github_workflow(path: str | Path) -> Pipeline:
    """Load a GitHub Actions workflow file as a Pipeline."""
    wf_path = Path(path)
    with open(wf_path, encoding="utf-8") as f:
        workflow = yaml.safe_load(f)

    if not isinstance(workflow, dict) or not workflow.get("jobs"):
        raise ValueError(f"{wf_path.name}: not a workflow (no 'jobs')")

    events: List[str] = []
    branches: List[str] = []
    for kind, cfg in _triggers(workflow).items():
        if kind not in EVENT_KINDS:
            continue
        events.append(kind)
        kind_branches = (cfg or {}).get("branches") or []
        if not kind_branches:
            # GitHub reads a missing filter as every branch; a Pipeline has no such wildcard
            raise ValueError(f"{wf_path.name}: {kind} trigger has no branches filter; list the target branches explicitly")
        for b in kind_branches:
            if b not in branches:
                branches.append(b)

    if not events:
        raise ValueError(f"{wf_path.name}: no push or pull_request trigger")

    job_id, job = next(iter(workflow["jobs"].items()))
    job = job or {}
    os_matrix = (((job.get("strategy") or {}).get("matrix") or {}).get("os")) or []
    if not os_matrix:
        runs_on = job.get("runs-on")
        if isinstance(runs_on, str) and "${{" not in runs_on:
            os_matrix = [runs_on]

    steps: List[Step] = []
    for idx, raw in enumerate(job.get("steps") or []):
        if "uses" in raw:
            if str(raw["uses"]).startswith("actions/checkout"):
                continue
            raise ValueError(f"{wf_path.name}: step {idx + 1} uses unsupported action {raw['uses']!r}")
        if "run" not in raw:
            raise ValueError(f"{wf_path.name}: step {idx + 1} has no 'run'")
        steps.append(
            Step(
                name=raw.get("name") or f"step-{idx + 1}",
                run=str(raw["run"]).strip(),
                cwd=raw.get("working-directory"),
            )
        )

    return make_pipeline(
        workflow.get("name") or wf_path.stem,
        steps_list=steps,
        os_matrix=os_matrix,
        branches=branches,
        events=events,
        env=workflow.get("env") or {},
        job_name=job.get("name") or job_id,
    )


def to_github_workflow(pipeline: Pipeline) -> str:
    """Render a Pipeline as GitHub Actions workflow YAML."""
    branch_filter = {"branches": list(pipeline.branches)}
    steps: List[Dict[str, Any]] = [{"uses": CHECKOUT_ACTION}]
    for s in pipeline.steps:
        step: Dict[str, Any] = {"name": s.name, "run": s.run}
        if s.cwd:
            step["working-directory"] = s.cwd
        steps.append(step)

    workflow: Dict[str, Any] = {
        "name": pipeline.name,
        "on": {kind: dict(branch_filter) for kind in pipeline.events},
    }
    if pipeline.env:
        workflow["env"] = dict(pipeline.env)
    workflow["jobs"] = {
        "ci": {
            "name": pipeline.job_name,
            "strategy": {"matrix": {"os": list(pipeline.os_matrix)}},
            "runs-on": "${{ matrix.os }}",
            "steps": steps,
        }
    }
    return yaml.safe_dump(workflow, sort_keys=False, default_flow_style=False)
