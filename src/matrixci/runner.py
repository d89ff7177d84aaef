# runner.py
from __future__ import annotations

import os
import platform
import runpy
import shutil
import subprocess
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .dsl import matrix, pipeline as dsl_pipeline
from .gha import load_github_workflow
from .model import (
    FAILURE,
    PENDING,
    RUNNING,
    SKIPPED,
    SUCCESS,
    CellResult,
    Pipeline,
    RunResult,
    Step,
    StepResult,
    TriggerEvent,
)
from .trigger import should_trigger
from .ui.console import Console, get_console

# local checkout ---> copy per cell ---> Format ---> Build ---> Test


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - per-cell reporting
      - debugging without full tracebacks
    """
    kind: str
    cell: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.cell:
            lines.append(f"cell={self.cell}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    cell: str
    step: str
    cmd: str
    exit_code: int
    output: str = ""

    def __str__(self) -> str:
        return f"[{self.cell}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


TOOL_HINTS = {
    "cargo": "Install the Rust toolchain (rustup) or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "npx": "Install Node.js (includes npx) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "python": "Install Python 3 or fix PATH.",
    "python3": "Install Python 3 or fix PATH (python3).",
}

# exit codes shells use for "command not found"
_NOT_FOUND_CODES = (127, 9009)

OUTPUT_TAIL = 4000
DEFAULT_WORK_ROOT = ".matrixci/work"


def tool_hint(cmd: str, exit_code: int | None) -> Optional[str]:
    if exit_code not in _NOT_FOUND_CODES:
        return None
    parts = cmd.split()
    if not parts:
        return None
    tool = parts[0]
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")


def host_os_label() -> str:
    """Runner label matching the machine we are on."""
    system = platform.system()
    if system == "Windows":
        return "windows-latest"
    if system == "Darwin":
        return "macos-latest"
    return "ubuntu-latest"


# ----------------------------------------------------------------------
# Pipeline loading (local file)
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a workflow file.

    A .py file must define either:
      - pipeline() -> Pipeline
      - PIPELINE = Pipeline(...)

    A .yml/.yaml file is read as a GitHub Actions workflow.
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in (".yml", ".yaml"):
        return load_github_workflow(wf_path)
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py or .yml file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    result = None
    fn = globals_dict.get("pipeline")
    if "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]
    elif fn is dsl_pipeline:
        raise TypeError(
            "Workflow imports the pipeline() helper but defines no workflow. "
            "Set PIPELINE = pipeline(...), or import the helper under another name, "
            "e.g. `from matrixci import pipeline as make_pipeline`."
        )
    elif callable(fn):
        result = fn()

    if not isinstance(result, Pipeline):
        raise TypeError(
            "Workflow must return/define a Pipeline. "
            "Define pipeline() -> Pipeline or PIPELINE = Pipeline(...)."
        )
    return result


# ----------------------------------------------------------------------
# Matrix expansion
# ----------------------------------------------------------------------

def expand_matrix(pipeline: Pipeline, only_os: Optional[Iterable[str]] = None) -> List[CellResult]:
    """One pending cell per configured OS identifier, in configured order."""
    os_ids = list(pipeline.os_matrix)
    if only_os:
        wanted = set(only_os)
        unknown = sorted(wanted - set(os_ids))
        if unknown:
            raise ValueError(f"OS not in matrix: {unknown}. Known: {os_ids}")
        os_ids = [o for o in os_ids if o in wanted]

    return matrix(os_ids).cells(
        lambda os_id: CellResult(os=os_id, steps=[StepResult(name=s.name, run=s.run) for s in pipeline.steps])
    )


def _render(cmd: str, os_id: str) -> str:
    return cmd.replace("${{ matrix.os }}", os_id).replace("${{matrix.os}}", os_id)


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_step(pipeline: Pipeline, os_id: str, step: Step, workspace: Path) -> StepResult:
    cwd = (workspace / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise CIError(
            kind="cwd_missing",
            cell=os_id,
            step=step.name,
            message=f"working directory not found: {cwd}",
        )

    env = os.environ.copy()
    env.update(pipeline.env)
    env["MATRIXCI_OS"] = os_id

    cmd = _render(step.run, os_id)
    started = time.monotonic()
    proc = subprocess.run(
        cmd,
        shell=True,
        cwd=str(cwd),
        env=env,
        # tools emit arbitrary bytes; only the exit status decides the outcome
        encoding="utf-8",
        errors="replace",
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )
    duration = time.monotonic() - started
    output = (proc.stdout or "")[-OUTPUT_TAIL:]

    if proc.returncode != 0:
        raise StepFailure(
            cell=os_id,
            step=step.name,
            cmd=cmd,
            exit_code=proc.returncode,
            output=output,
        )

    return StepResult(
        name=step.name,
        run=cmd,
        outcome=SUCCESS,
        exit_code=0,
        output=output,
        duration=duration,
    )


def run_cell(
    pipeline: Pipeline,
    os_id: str,
    workspace: str | Path,
    console: Optional[Console] = None,
    cell: Optional[CellResult] = None,
) -> CellResult:
    """
    Run the pipeline steps for one OS, strictly in order.

    The first failing step fails the cell; later steps are marked
    skipped and never started.
    """
    console = console or get_console()
    workspace = Path(workspace)
    if cell is None:
        cell = CellResult(os=os_id, steps=[StepResult(name=s.name, run=s.run) for s in pipeline.steps])

    cell.status = RUNNING
    console.print_cell_start(os_id)

    for idx, step in enumerate(pipeline.steps):
        console.print_step(os_id, step.name)
        started = time.monotonic()
        try:
            cell.steps[idx] = _run_step(pipeline, os_id, step, workspace)
            console.print_step_result(os_id, cell.steps[idx])
        except StepFailure as e:
            cell.steps[idx] = StepResult(
                name=step.name,
                run=e.cmd,
                outcome=FAILURE,
                exit_code=e.exit_code,
                output=e.output,
                duration=time.monotonic() - started,
            )
            console.print_step_result(os_id, cell.steps[idx], hint=tool_hint(e.cmd, e.exit_code))
        except (CIError, OSError) as e:
            cell.steps[idx].outcome = FAILURE
            cell.steps[idx].output = str(e)
            cell.error = str(e).split("\n")[0]
            console.print_step_result(os_id, cell.steps[idx])

        if cell.steps[idx].outcome == FAILURE:
            for rest in cell.steps[idx + 1:]:
                rest.outcome = SKIPPED
                console.print_step_skipped(os_id, rest.name)
            cell.status = FAILURE
            break
    else:
        cell.status = SUCCESS

    console.print_cell_done(cell)
    return cell


# ----------------------------------------------------------------------
# Workspaces
# ----------------------------------------------------------------------

def _ignore_for(work_root: Path) -> Callable[[str, List[str]], List[str]]:
    skip_names = {".git", ".matrixci", "__pycache__"}

    def _ignore(directory: str, names: List[str]) -> List[str]:
        here = Path(directory).resolve()
        return [n for n in names if n in skip_names or (here / n) == work_root]

    return _ignore


def prepare_workspace(repo_root: str | Path, work_root: str | Path, run_id: str, os_id: str) -> Path:
    """Copy the repository into a private directory for one cell."""
    src = Path(repo_root).resolve()
    root = Path(work_root).resolve()
    dest = root / run_id / os_id
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dest, ignore=_ignore_for(root))
    return dest


def _run_isolated_cell(
    pipeline: Pipeline,
    cell: CellResult,
    repo_root: Path,
    work_root: Path,
    run_id: str,
    isolate: bool,
    keep_workspaces: bool,
    console: Console,
) -> CellResult:
    workspace = prepare_workspace(repo_root, work_root, run_id, cell.os) if isolate else repo_root
    try:
        return run_cell(pipeline, cell.os, workspace, console=console, cell=cell)
    finally:
        if isolate and not keep_workspaces:
            shutil.rmtree(workspace, ignore_errors=True)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def run_pipeline(
    event: TriggerEvent,
    pipeline: Pipeline,
    *,
    repo_root: str | Path = ".",
    work_root: str | Path | None = None,
    max_workers: int | None = None,
    only_os: Optional[Iterable[str]] = None,
    isolate: bool = True,
    keep_workspaces: bool = False,
    console: Optional[Console] = None,
    run_id: str | None = None,
) -> Optional[RunResult]:
    """
    Run the pipeline for `event`.

    Returns None when the event does not match the pipeline's triggers
    (no Run is created). Otherwise every cell runs to completion on its
    own; one failing cell never stops the others.
    """
    console = console or get_console()
    if not should_trigger(event, pipeline):
        console.print_not_triggered(event, pipeline)
        return None

    repo_root_p = Path(repo_root).resolve()
    work_root_p = Path(work_root).resolve() if work_root else repo_root_p / DEFAULT_WORK_ROOT

    run = RunResult(
        run_id=run_id or new_run_id(),
        event=event,
        cells=expand_matrix(pipeline, only_os=only_os),
    )

    if not isolate and len(run.cells) > 1:
        raise CIError(
            kind="isolation_required",
            cell="",
            step=None,
            message="cells share no state; running several without isolation is not supported",
            details={"cells": ", ".join(c.os for c in run.cells)},
        )

    workers = max_workers or len(run.cells)
    by_os: Dict[str, CellResult] = {c.os: c for c in run.cells}

    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {
            pool.submit(
                _run_isolated_cell,
                pipeline,
                cell,
                repo_root_p,
                work_root_p,
                run.run_id,
                isolate,
                keep_workspaces,
                console,
            ): cell.os
            for cell in run.cells
        }

        for fut in as_completed(futures):
            os_id = futures[fut]
            try:
                fut.result()
            except Exception as e:
                # infrastructure failure: confined to this cell
                cell = by_os[os_id]
                cell.status = FAILURE
                cell.error = str(e).split("\n")[0] or type(e).__name__
                for s in cell.steps:
                    if s.outcome == PENDING:
                        s.outcome = SKIPPED
                console.print_cell_done(cell)
                console.print_debug(f"{os_id}: {type(e).__name__}: {e}")

    return run
