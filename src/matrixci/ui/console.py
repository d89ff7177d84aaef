"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from matrixci.model import CellResult, Pipeline, RunResult, StepResult, TriggerEvent


_STATUS_MARK = {
    "success": "✓",
    "failure": "✗",
    "skipped": "⏭",
    "pending": "·",
    "running": "…",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # cells report from worker threads
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(
        self,
        repository: str,
        pipeline: Pipeline,
        event: TriggerEvent,
        run_id: str,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Run ID: {run_id}",
            f"Repository: {repository}",
            f"Pipeline: {pipeline.name}",
            f"Event: {event.kind} -> {event.branch}",
            f"Cells: {', '.join(pipeline.os_matrix)}",
            "",
        )

    def print_not_triggered(self, event: TriggerEvent, pipeline: Pipeline) -> None:
        self._emit(
            f"NOT TRIGGERED: {event.kind} -> {event.branch}",
            f"Pipeline '{pipeline.name}' runs on {pipeline.events} to {pipeline.branches}",
        )

    def print_cell_start(self, os_id: str) -> None:
        self._emit(f"[{os_id}] CELL STARTED")

    def print_step(self, os_id: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{os_id}] ▶ {name}")

    def print_step_result(self, os_id: str, result: StepResult, hint: Optional[str] = None) -> None:
        mark = _STATUS_MARK.get(result.outcome, "?")
        lines = [f"[{os_id}] {mark} {result.name} ({result.outcome}, {result.duration:.1f}s)"]
        if result.outcome == "failure":
            lines.append(f"[{os_id}]   Exit code: {result.exit_code}")
            if hint:
                lines.append(f"[{os_id}]   Hint: {hint}")
            if result.output:
                tail = result.output if self.debug else "\n".join(result.output.splitlines()[-20:])
                for out_line in tail.splitlines():
                    lines.append(f"[{os_id}]   | {out_line}")
        self._emit(*lines)

    def print_step_skipped(self, os_id: str, name: str) -> None:
        self._emit(f"[{os_id}] ⏭ {name} (skipped)")

    def print_cell_done(self, cell: CellResult) -> None:
        line = f"[{cell.os}] CELL {cell.status.upper()}"
        if cell.error:
            line += f": {cell.error}"
        self._emit(line)

    def print_results(self, run: RunResult) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for cell in run.cells:
            lines.append(f"  {cell.os}: {cell.status.upper()}")
            for step in cell.steps:
                mark = _STATUS_MARK.get(step.outcome, "?")
                lines.append(f"    {mark} {step.name}: {step.outcome}")
        lines.append(f"RUN: {run.status.upper()}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_agent_started(self, agent_id: str, os_id: str, api: str, poll_interval: int) -> None:
        """Print agent start information."""
        self._emit(
            "\nAGENT STARTED",
            f"Agent ID: {agent_id}",
            f"Runner OS: {os_id}",
            f"API: {api}",
            f"Polling every: {poll_interval}s",
            "",
        )

    def print_lease_acquired(self, os_id: str, run_id: str, cell_id: str) -> None:
        self._emit("\nLEASE ACQUIRED", f"Cell: {os_id} ({cell_id})", f"Run ID: {run_id}")

    def print_execution_complete(self, status: str, duration: Optional[float] = None) -> None:
        """Print execution completion message."""
        lines = ["\nEXECUTION COMPLETE", f"Status: {status}"]
        if duration is not None:
            lines.append(f"Duration: {duration:.1f}s")
        self._emit(*lines)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (initialized by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
