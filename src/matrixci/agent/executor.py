# agent/executor.py
from __future__ import annotations

import io
import shutil
import subprocess
import sys
from pathlib import Path

from matrixci.model import FAILURE
from matrixci.runner import run_cell
from matrixci.ui.console import get_console

from .models import ExecutionResult, Lease


class LogCapture:
    """
    Context manager that captures stdout/stderr for later submission to the API.

    Logs are sent once, at cell completion, so everything printed
    (including setup errors) ends up in the cell's log.
    """

    def __init__(self):
        self.log_buffer = io.StringIO()
        self.original_stdout = sys.stdout
        self.original_stderr = sys.stderr

    def __enter__(self):
        sys.stdout = self
        sys.stderr = self
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        sys.stdout = self.original_stdout
        sys.stderr = self.original_stderr

    def write(self, text: str) -> int:
        self.log_buffer.write(text)
        return len(text)

    def flush(self) -> None:
        pass

    def get_logs(self) -> str:
        return self.log_buffer.getvalue()


def _git(args: list[str], cwd: Path | None = None) -> None:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=False,
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise RuntimeError(f"git {args[0]} failed: {result.stderr.strip()}")


def checkout_cell_workspace(repo_url: str, ref: str, dest: Path) -> Path:
    """
    Fresh clone of `repo_url` at `ref` into `dest`.

    Every cell gets its own checkout; nothing is reused between cells.

    Raises:
        RuntimeError: If git operations fail
    """
    if dest.exists():
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    try:
        _git(["clone", repo_url, str(dest)])
        if ref and ref != "HEAD":
            _git(["checkout", ref], cwd=dest)
    except FileNotFoundError:
        raise RuntimeError("git command not found. Please install Git.")
    return dest


def execute_lease(lease: Lease, work_dir: Path) -> ExecutionResult:
    """
    Run the leased cell: checkout, then the pipeline steps for lease.os.

    Never raises; failures come back as a "failure" ExecutionResult.
    """
    log_capture = LogCapture()
    console = get_console()
    cell = None

    try:
        with log_capture:
            workspace = checkout_cell_workspace(lease.repo_url, lease.ref, work_dir / lease.cell_id)
            cell = run_cell(lease.pipeline, lease.os, workspace, console=console)
    except Exception as e:
        logs = log_capture.get_logs()
        error_msg = str(e)
        if error_msg not in logs:
            logs = f"{logs}\nError: {error_msg}" if logs else f"Error: {error_msg}"
        return ExecutionResult(status=FAILURE, logs=logs, cell=cell, error=error_msg)

    return ExecutionResult(
        status=cell.status,
        logs=log_capture.get_logs(),
        cell=cell,
        error=cell.error,
    )
