"""Tests for the matrixci CLI."""

import json
import textwrap

import pytest
from click.testing import CliRunner

from matrixci.cli import cli


def write_workflow(directory, format_cmd="{PY} -c pass", name="matrixci_workflow.py"):
    (directory / name).write_text(
        textwrap.dedent(
            f"""
            import sys
            from matrixci.dsl import pipeline as make_pipeline, sh

            PY = '"' + sys.executable + '"'

            def pipeline():
                return make_pipeline(
                    "CI",
                    sh("Format", {format_cmd!r}.format(PY=PY)),
                    sh("Build", PY + " -c pass"),
                    sh("Test", PY + " -c pass"),
                )
            """
        )
    )


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "src.txt").write_text("code\n")
    return tmp_path


@pytest.fixture
def cli_runner():
    return CliRunner()


class TestRun:
    def test_push_to_main_succeeds(self, project, cli_runner) -> None:
        write_workflow(project)
        result = cli_runner.invoke(cli, ["run", "--branch", "main"])
        assert result.exit_code == 0, result.output
        assert "RUN STARTED" in result.output
        for os_id in ("ubuntu-latest", "windows-latest", "macos-latest"):
            assert f"{os_id}: SUCCESS" in result.output
        assert "RUN: SUCCESS" in result.output

    def test_other_branch_is_a_noop(self, project, cli_runner) -> None:
        write_workflow(project)
        result = cli_runner.invoke(cli, ["run", "--branch", "dev"])
        assert result.exit_code == 0
        assert "NOT TRIGGERED" in result.output
        assert "RUN STARTED" not in result.output

    def test_failing_cell_fails_the_command(self, project, cli_runner) -> None:
        fmt = "{PY} -c \"import os, sys; sys.exit(os.environ['MATRIXCI_OS'] == 'macos-latest')\""
        write_workflow(project, format_cmd=fmt)
        result = cli_runner.invoke(cli, ["run", "--event", "pull-request", "--branch", "main"])
        assert result.exit_code == 1
        assert "macos-latest: FAILURE" in result.output
        assert "ubuntu-latest: SUCCESS" in result.output
        assert "RUN: FAILURE" in result.output

    def test_os_filter(self, project, cli_runner) -> None:
        write_workflow(project)
        result = cli_runner.invoke(cli, ["run", "--branch", "main", "--os", "windows-latest"])
        assert result.exit_code == 0
        assert "windows-latest: SUCCESS" in result.output
        assert "ubuntu-latest: SUCCESS" not in result.output

    def test_unknown_os(self, project, cli_runner) -> None:
        write_workflow(project)
        result = cli_runner.invoke(cli, ["run", "--branch", "main", "--os", "solaris"])
        assert result.exit_code == 1
        assert "OS not in matrix" in result.output

    def test_event_file(self, project, cli_runner) -> None:
        write_workflow(project)
        payload = {"pull_request": {"base": {"ref": "main"}, "head": {"ref": "feature", "sha": "abc"}}}
        (project / "event.json").write_text(json.dumps(payload))
        result = cli_runner.invoke(cli, ["run", "--event", "pull_request", "--event-file", "event.json"])
        assert result.exit_code == 0, result.output
        assert "pull_request -> main" in result.output

    def test_no_workflow(self, project, cli_runner) -> None:
        result = cli_runner.invoke(cli, ["run", "--branch", "main"])
        assert result.exit_code == 1
        assert "No workflow file found" in result.output

    def test_multiple_workflows(self, project, cli_runner) -> None:
        write_workflow(project)
        write_workflow(project, name="other_workflow.py")
        result = cli_runner.invoke(cli, ["run", "--branch", "main"])
        assert result.exit_code == 1
        assert "Multiple workflow files found" in result.output


class TestTrigger:
    def test_main(self, project, cli_runner) -> None:
        write_workflow(project)
        result = cli_runner.invoke(cli, ["trigger", "--branch", "main"])
        assert result.exit_code == 0
        assert "TRIGGERED: push -> main" in result.output

    def test_feature_branch(self, project, cli_runner) -> None:
        write_workflow(project)
        result = cli_runner.invoke(cli, ["trigger", "--branch", "feature/x"])
        assert "NOT TRIGGERED" in result.output


def test_export(project, cli_runner) -> None:
    write_workflow(project)
    result = cli_runner.invoke(cli, ["export", "--output", ".github/workflows/ci.yml"])
    assert result.exit_code == 0, result.output
    text = (project / ".github" / "workflows" / "ci.yml").read_text()
    assert "actions/checkout@v4" in text
    assert "macos-latest" in text

    result = cli_runner.invoke(cli, ["trigger", "--workflow", ".github/workflows/ci.yml", "--branch", "main"])
    assert "TRIGGERED" in result.output


class TestSubmit:
    @pytest.fixture
    def sent(self, monkeypatch):
        calls = []

        def fake_submit(self, repo_url, event, pipeline):
            calls.append({"repo_url": repo_url, "event": event, "pipeline": pipeline})
            return {"triggered": True, "run_id": "r1", "cell_ids": {"ubuntu-latest": "c1"}}

        monkeypatch.setattr("matrixci.cli.APIClient.submit_event", fake_submit)
        return calls

    def push_payload(self, project):
        payload = {"ref": "refs/heads/main", "after": "0123abcd"}
        (project / "event.json").write_text(json.dumps(payload))
        return "event.json"

    def test_pushed_sha_is_kept(self, project, cli_runner, sent) -> None:
        write_workflow(project)
        event_file = self.push_payload(project)
        result = cli_runner.invoke(
            cli, ["submit", "--api", "http://ci", "--repo", "https://example.com/r.git", "--event-file", event_file]
        )
        assert result.exit_code == 0, result.output
        assert sent[0]["event"]["sha"] == "0123abcd"
        assert sent[0]["event"]["branch"] == "main"
        assert "Submitted run r1" in result.output

    def test_explicit_ref_replaces_sha(self, project, cli_runner, sent) -> None:
        write_workflow(project)
        event_file = self.push_payload(project)
        result = cli_runner.invoke(
            cli,
            ["submit", "--api", "http://ci", "--repo", "r", "--event-file", event_file, "--ref", "v1.2"],
        )
        assert result.exit_code == 0, result.output
        assert sent[0]["event"]["ref"] == "v1.2"
        assert sent[0]["event"]["sha"] is None
