# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

# Event kinds (GitHub naming)
PUSH = "push"
PULL_REQUEST = "pull_request"
EVENT_KINDS = (PUSH, PULL_REQUEST)

# Step outcomes
PENDING = "pending"
SUCCESS = "success"
FAILURE = "failure"
SKIPPED = "skipped"

# Cell status adds RUNNING to the above
RUNNING = "running"

DEFAULT_OS_MATRIX = ["ubuntu-latest", "windows-latest", "macos-latest"]
DEFAULT_BRANCHES = ["main"]


def normalize_kind(kind: str) -> str:
    k = kind.strip().lower().replace("-", "_")
    if k not in EVENT_KINDS:
        raise ValueError(f"Unsupported event kind: {kind!r} (expected one of {list(EVENT_KINDS)})")
    return k


def normalize_branch(branch: str) -> str:
    b = branch.strip()
    if b.startswith("refs/heads/"):
        b = b[len("refs/heads/"):]
    return b


@dataclass(frozen=True)
class TriggerEvent:
    """A repository action that may start a Run."""
    kind: str
    branch: str
    ref: str | None = None
    sha: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", normalize_kind(self.kind))
        object.__setattr__(self, "branch", normalize_branch(self.branch))

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "branch": self.branch, "ref": self.ref, "sha": self.sha}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TriggerEvent:
        return cls(
            kind=data["kind"],
            branch=data["branch"],
            ref=data.get("ref"),
            sha=data.get("sha"),
        )


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a matrix cell."""
    name: str
    run: str
    cwd: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "run": self.run, "cwd": self.cwd}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Step:
        return cls(name=data["name"], run=data["run"], cwd=data.get("cwd"))


@dataclass
class StepResult:
    name: str
    run: str
    outcome: str = PENDING
    exit_code: Optional[int] = None
    output: str = ""
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "run": self.run,
            "outcome": self.outcome,
            "exit_code": self.exit_code,
            "output": self.output,
            "duration": self.duration,
        }


@dataclass
class CellResult:
    """One OS execution environment bound to a Run."""
    os: str
    steps: List[StepResult] = field(default_factory=list)
    status: str = PENDING
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def step(self, name: str) -> StepResult:
        for s in self.steps:
            if s.name == name:
                return s
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "os": self.os,
            "status": self.status,
            "error": self.error,
            "steps": [s.to_dict() for s in self.steps],
        }


def aggregate_status(statuses: Iterable[str]) -> str:
    """
    Run status from its cell statuses.

    A single failed cell fails the run, even while other cells are
    still going. Success requires every cell to have succeeded.
    """
    statuses = list(statuses)
    if any(s == FAILURE for s in statuses):
        return FAILURE
    if statuses and all(s == SUCCESS for s in statuses):
        return SUCCESS
    if any(s in (RUNNING, SUCCESS) for s in statuses):
        return RUNNING
    return PENDING


@dataclass
class RunResult:
    run_id: str
    event: TriggerEvent
    cells: List[CellResult] = field(default_factory=list)

    @property
    def status(self) -> str:
        return aggregate_status(c.status for c in self.cells)

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def cell(self, os_id: str) -> CellResult:
        for c in self.cells:
            if c.os == os_id:
                return c
        raise KeyError(os_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "event": self.event.to_dict(),
            "status": self.status,
            "cells": [c.to_dict() for c in self.cells],
        }


def validate_pipeline(name: str, steps: List[Step], os_matrix: List[str]) -> None:
    if not steps:
        raise ValueError(f"pipeline({name!r}) must have at least one step")
    if not os_matrix:
        raise ValueError(f"pipeline({name!r}) must have at least one OS in its matrix")

    names = [s.name for s in steps]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate step names found: {dupes}")

    if len(set(os_matrix)) != len(os_matrix):
        dupes = sorted({o for o in os_matrix if os_matrix.count(o) > 1})
        raise ValueError(f"Duplicate OS identifiers in matrix: {dupes}")


@dataclass
class Pipeline:
    """
    Static configuration of a verification pipeline.

    `steps` run in order in every cell; `os_matrix` defines the cells.
    """
    name: str
    steps: List[Step]
    os_matrix: List[str] = field(default_factory=lambda: list(DEFAULT_OS_MATRIX))
    branches: List[str] = field(default_factory=lambda: list(DEFAULT_BRANCHES))
    events: List[str] = field(default_factory=lambda: list(EVENT_KINDS))
    env: Dict[str, str] = field(default_factory=dict)
    job_name: str = "verify"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "job_name": self.job_name,
            "steps": [s.to_dict() for s in self.steps],
            "os_matrix": list(self.os_matrix),
            "branches": list(self.branches),
            "events": list(self.events),
            "env": dict(self.env),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Pipeline:
        """Rebuild a Pipeline from its wire form; rejects pipelines the DSL would reject."""
        steps = [Step.from_dict(s) for s in data["steps"]]
        # absent means the default matrix, an explicit empty list is an error
        os_matrix = list(DEFAULT_OS_MATRIX) if data.get("os_matrix") is None else list(data["os_matrix"])
        validate_pipeline(data["name"], steps, os_matrix)
        return cls(
            name=data["name"],
            steps=steps,
            os_matrix=os_matrix,
            branches=list(data.get("branches") or DEFAULT_BRANCHES),
            events=[normalize_kind(k) for k in (data.get("events") or EVENT_KINDS)],
            env={k: str(v) for k, v in (data.get("env") or {}).items()},
            job_name=data.get("job_name", "verify"),
        )
