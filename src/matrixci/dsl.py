# src/matrixci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from .model import (
    DEFAULT_BRANCHES,
    DEFAULT_OS_MATRIX,
    EVENT_KINDS,
    Pipeline,
    Step,
    normalize_kind,
    validate_pipeline,
)


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Functional pipeline helper
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *steps: Step,  # allow: pipeline("ci", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,
    os_matrix: Optional[Iterable[str]] = None,
    branches: Optional[List[str]] = None,
    events: Optional[List[str]] = None,
    env: Optional[Dict[str, Any]] = None,
    job_name: str = "verify",
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Pipeline:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    matrix_final = list(os_matrix) if os_matrix is not None else list(DEFAULT_OS_MATRIX)
    validate_pipeline(name, steps_final, matrix_final)

    return Pipeline(
        name=name,
        steps=steps_final,
        os_matrix=matrix_final,
        branches=list(branches) if branches else list(DEFAULT_BRANCHES),
        events=[normalize_kind(e) for e in (events or EVENT_KINDS)],
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        job_name=job_name,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class PipelineBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []
        self._os_matrix: list[str] = list(DEFAULT_OS_MATRIX)
        self._branches: list[str] = list(DEFAULT_BRANCHES)
        self._events: list[str] = list(EVENT_KINDS)
        self._env: dict[str, str] = {}
        self._job_name = "verify"

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(Step(name=name, run=run, cwd=cwd))
        return self

    def on(self, *events: str):
        self._events = [normalize_kind(e) for e in events]
        return self

    def on_branches(self, *branches: str):
        self._branches = list(branches)
        return self

    def runs_on(self, *os_ids: str):
        self._os_matrix = list(os_ids)
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def named_job(self, job_name: str):
        self._job_name = job_name
        return self

    def build(self) -> Pipeline:
        validate_pipeline(self.name, self._steps, self._os_matrix)
        return Pipeline(
            name=self.name,
            steps=list(self._steps),
            os_matrix=list(self._os_matrix),
            branches=list(self._branches),
            events=list(self._events),
            env=dict(self._env),
            job_name=self._job_name,
        )


def build(name: str) -> PipelineBuilder:
    """Convenience: build('ci').define_step(...).build()"""
    return PipelineBuilder(name)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix(["ubuntu-latest", "macos-latest"]).cells(
            lambda os_id: CellResult(os=os_id)
        )
    """
    def __init__(self, values: Iterable[Any]):
        self.values = list(values)

    def cells(self, builder: Callable[[Any], Any]) -> List[Any]:
        return [builder(v) for v in self.values]


def matrix(values: Iterable[Any]) -> Matrix:
    return Matrix(values)
