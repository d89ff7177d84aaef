# cli.py
from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import click

from matrixci.agent.api_client import APIClient, APIError
from matrixci.git_facts.git import get_current_ref, get_remote_url
from matrixci.gha import to_github_workflow
from matrixci.model import EVENT_KINDS, Pipeline, TriggerEvent
from matrixci.runner import host_os_label, load_pipeline, new_run_id, run_pipeline
from matrixci.trigger import event_from_git, event_from_github, should_trigger
from matrixci.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "matrixci_workflow.py"


def find_workflow_files() -> list[Path]:
    """Workflow files in the current directory (matrixci_workflow.py first)."""
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in sorted(current_dir.glob("*_workflow.py")):
        if path.name != DEFAULT_WORKFLOW:
            workflow_files.append(path)

    return workflow_files


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Workflow file from the argument, or the single one in the current directory.

    Raises:
        SystemExit: If no workflow, or more than one, can be found
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and not workflow_path.suffix:
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if not workflow_files:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create {DEFAULT_WORKFLOW}, or point at a GitHub Actions file:\n"
            "  matrixci run --workflow .github/workflows/ci.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion=f"Specify a workflow explicitly:\n  matrixci run --workflow {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(ctx, workflow: str | None) -> Pipeline:
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return load_pipeline(workflow_path)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)


def _resolve_event(event_kind: str, branch: str | None, event_file: str | None) -> TriggerEvent:
    """Event from --event-file, --branch, or the local checkout (in that order)."""
    if event_file:
        with open(event_file, encoding="utf-8") as f:
            payload = json.load(f)
        return event_from_github(event_kind, payload)
    if branch:
        return TriggerEvent(kind=event_kind, branch=branch)
    return event_from_git(event_kind)


def _event_or_exit(event_kind: str, branch: str | None, event_file: str | None) -> TriggerEvent:
    console = get_console()
    try:
        return _resolve_event(event_kind, branch, event_file)
    except (ValueError, KeyError, OSError, subprocess.CalledProcessError) as e:
        console.print_error(
            "Could not determine the trigger event",
            str(e) or type(e).__name__,
            suggestion="Pass the target branch explicitly:\n  matrixci run --branch main",
        )
        sys.exit(1)


event_option = click.option(
    "--event",
    "event_kind",
    type=click.Choice(list(EVENT_KINDS) + ["pull-request"]),
    default="push",
    show_default=True,
    help="Event kind to simulate",
)
branch_option = click.option("--branch", default=None, help="Target branch (defaults to the current git branch)")
event_file_option = click.option(
    "--event-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="GitHub event payload JSON (e.g. $GITHUB_EVENT_PATH)",
)
workflow_option = click.option(
    "--workflow",
    default=None,
    help=f"Workflow file (.py or GitHub Actions .yml); defaults to {DEFAULT_WORKFLOW} if present",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and full step output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: cross-platform build verification pipeline."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@workflow_option
@event_option
@branch_option
@event_file_option
@click.option("--workers", default=None, type=int, help="Number of cells to run at once (default: all)")
@click.option("--os", "only_os", multiple=True, help="Only run these matrix cells (repeatable)")
@click.option("--host-only", is_flag=True, default=False, help="Only run the cell matching this machine")
@click.option("--work-dir", default=None, help="Where per-cell workspaces are created")
@click.option("--keep-work/--no-keep-work", default=False, show_default=True, help="Keep per-cell workspaces")
@click.pass_context
def run(ctx, workflow, event_kind, branch, event_file, workers, only_os, host_only, work_dir, keep_work):
    """Run the pipeline locally for an event."""
    console = get_console()
    pipeline = _load(ctx, workflow)
    event = _event_or_exit(event_kind, branch, event_file)

    if host_only:
        only_os = (host_os_label(),)

    try:
        try:
            repo_name = get_remote_url("origin").rstrip("/").split("/")[-1].replace(".git", "")
        except (subprocess.CalledProcessError, FileNotFoundError):
            repo_name = Path(".").resolve().name

        if should_trigger(event, pipeline):
            run_id = new_run_id()
            console.print_run_started(repo_name, pipeline, event, run_id)
        else:
            run_id = None

        result = run_pipeline(
            event,
            pipeline,
            repo_root=".",
            work_root=work_dir,
            max_workers=workers,
            only_os=only_os or None,
            keep_workspaces=keep_work,
            console=console,
            run_id=run_id,
        )

        if result is None:
            return

        console.print_results(result)
        if not result.ok:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except ValueError as e:
        console.print_error("Invalid run request", str(e))
        sys.exit(1)


@cli.command()
@workflow_option
@event_option
@branch_option
@event_file_option
@click.pass_context
def trigger(ctx, workflow, event_kind, branch, event_file):
    """Show whether an event would start a run."""
    console = get_console()
    pipeline = _load(ctx, workflow)
    event = _event_or_exit(event_kind, branch, event_file)

    if should_trigger(event, pipeline):
        console.print_info(f"TRIGGERED: {event.kind} -> {event.branch}")
        console.print_info(f"Cells: {', '.join(pipeline.os_matrix)}")
    else:
        console.print_not_triggered(event, pipeline)


@cli.command()
@workflow_option
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write to file instead of stdout")
@click.pass_context
def export(ctx, workflow, output):
    """Print the pipeline as a GitHub Actions workflow."""
    pipeline = _load(ctx, workflow)
    text = to_github_workflow(pipeline)
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_text(text, encoding="utf-8")
        get_console().print_info(f"Wrote {output}")
    else:
        click.echo(text, nl=False)


@cli.command()
@click.option("--api", required=True, help="API base URL (e.g., http://localhost:8000)")
@workflow_option
@event_option
@branch_option
@event_file_option
@click.option("--repo", default=None, help="Repository URL (defaults to git remote origin URL)")
@click.option("--ref", default=None, help="Git ref to check out (defaults to current branch or HEAD)")
@click.pass_context
def submit(ctx, api, workflow, event_kind, branch, event_file, repo, ref):
    """Send an event to the control plane."""
    console = get_console()
    pipeline = _load(ctx, workflow)
    event = _event_or_exit(event_kind, branch, event_file)

    explicit_ref = ref is not None
    try:
        repo = repo or get_remote_url("origin")
        ref = ref or event.ref or get_current_ref()
    except (subprocess.CalledProcessError, FileNotFoundError):
        console.print_error(
            "Could not determine repository",
            "No --repo/--ref specified and git could not provide them.",
            suggestion="Specify them explicitly:\n  matrixci submit --api <url> --repo <repo_url> --ref <ref>",
        )
        sys.exit(1)

    event_dict = event.to_dict()
    event_dict["ref"] = ref
    if explicit_ref:
        # agents check out the sha when there is one; --ref overrides it
        event_dict["sha"] = None

    try:
        result = APIClient(api).submit_event(repo, event_dict, pipeline.to_dict())
    except APIError as e:
        console.print_error("API request failed", str(e), suggestion=f"Check the API at {api}.")
        sys.exit(1)

    if not result.get("triggered"):
        console.print_not_triggered(event, pipeline)
        return

    console.print_info(f"Submitted run {result['run_id']} to {api.rstrip('/')}")
    for os_id, cell_id in (result.get("cell_ids") or {}).items():
        console.print_info(f"  {os_id}: {cell_id}")


@cli.command()
@click.option("--api", required=True, help="API base URL (e.g., http://localhost:8000)")
@click.argument("run_id")
@click.pass_context
def status(ctx, api, run_id):
    """Show a run's status from the control plane."""
    console = get_console()
    try:
        data = APIClient(api).get_run(run_id)
    except APIError as e:
        console.print_error("API request failed", str(e))
        sys.exit(1)

    console.print_info(f"Run {data['id']}: {data['status'].upper()}")
    for cell in data.get("cells", []):
        console.print_info(f"  {cell['os']}: {cell['status'].upper()}")
        for step in cell.get("steps", []):
            console.print_info(f"    {step['name']}: {step['outcome']}")

    if data["status"] == "failure":
        sys.exit(1)


@cli.command()
@click.option("--api", required=True, help="API base URL (e.g., http://localhost:8000)")
@click.option("--agent-id", default=None, help="Unique agent identifier (defaults to hostname)")
@click.option("--os", "os_id", default=None, help="Runner label to serve (defaults to this machine's)")
@click.option("--poll-interval", default=5, type=int, help="Seconds between polls when no cells are queued")
@click.pass_context
def agent(ctx, api, agent_id, os_id, poll_interval):
    """Run an agent that executes cells for one OS."""
    import socket

    from matrixci.agent.agent import run_agent

    console = get_console()
    try:
        run_agent(api, agent_id or socket.gethostname(), os_id or host_os_label(), poll_interval)
    except KeyboardInterrupt:
        console.print_info("\nAgent stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    cli()
