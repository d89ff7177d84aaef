"""Tests for the agent side: lease execution and API client."""

import pytest

from helpers import append, exit_on, py
from matrixci.agent import executor
from matrixci.agent.api_client import APIClient, APIError
from matrixci.agent.executor import execute_lease
from matrixci.agent.models import Lease
from matrixci.dsl import pipeline, sh


def make_lease(p, os_id="ubuntu-latest"):
    return Lease(
        cell_id="cell-1",
        run_id="run-1",
        os=os_id,
        payload_json={"repo_url": "https://example.com/acme/widget.git", "ref": "main", "pipeline": p.to_dict()},
        lease_expires_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture
def checkout(tmp_path, monkeypatch):
    workspace = tmp_path / "checkout"
    workspace.mkdir()
    calls = []

    def fake_checkout(repo_url, ref, dest):
        calls.append((repo_url, ref, dest))
        return workspace

    monkeypatch.setattr(executor, "checkout_cell_workspace", fake_checkout)
    return workspace, calls


class TestExecuteLease:
    def test_success(self, tmp_path, checkout) -> None:
        workspace, calls = checkout
        p = pipeline("CI", sh("Format", append("F")), sh("Build", append("B")), sh("Test", append("T")))
        result = execute_lease(make_lease(p), tmp_path / "work")

        assert result.status == "success"
        assert [s.outcome for s in result.cell.steps] == ["success"] * 3
        assert (workspace / "trace.txt").read_text() == "FBT"
        assert "[ubuntu-latest]" in result.logs
        assert calls == [("https://example.com/acme/widget.git", "main", tmp_path / "work" / "cell-1")]

    def test_step_failure_on_this_os(self, tmp_path, checkout) -> None:
        p = pipeline("CI", sh("Format", exit_on("macos-latest")), sh("Build", py("pass")), sh("Test", py("pass")))
        result = execute_lease(make_lease(p, os_id="macos-latest"), tmp_path / "work")

        assert result.status == "failure"
        body = result.to_dict()
        assert [s["outcome"] for s in body["steps"]] == ["failure", "skipped", "skipped"]

    def test_checkout_error_is_reported_not_raised(self, tmp_path, monkeypatch) -> None:
        def broken(repo_url, ref, dest):
            raise RuntimeError("git clone failed: repository not found")

        monkeypatch.setattr(executor, "checkout_cell_workspace", broken)
        p = pipeline("CI", sh("Test", py("pass")))
        result = execute_lease(make_lease(p), tmp_path / "work")

        assert result.status == "failure"
        assert result.error == "git clone failed: repository not found"
        assert "Error: git clone failed" in result.logs
        assert result.to_dict()["steps"] == []


def test_lease_from_dict() -> None:
    lease = Lease.from_dict(
        {
            "cell_id": "c",
            "run_id": "r",
            "os": "windows-latest",
            "payload_json": {"pipeline": {"name": "CI", "steps": [{"name": "Test", "run": "t"}]}},
            "lease_expires_at": "2026-01-01T00:00:00+00:00",
        }
    )
    assert lease.ref == "HEAD"
    assert lease.pipeline.steps[0].run == "t"


class TestAPIClient:
    def test_claim_empty_queue(self, monkeypatch) -> None:
        client = APIClient("http://api.local/", "agent-1")
        seen = []

        def fake_request(method, path, data=None):
            seen.append((method, path, data))
            return {}

        monkeypatch.setattr(client, "_request", fake_request)
        assert client.claim_lease("ubuntu-latest") is None
        assert seen == [("POST", "/leases/claim", {"agent_id": "agent-1", "os": "ubuntu-latest"})]

    def test_claim_malformed(self, monkeypatch) -> None:
        client = APIClient("http://api.local", "agent-1")
        monkeypatch.setattr(client, "_request", lambda method, path, data=None: {"cell_id": "c"})
        with pytest.raises(APIError, match="Malformed lease"):
            client.claim_lease("ubuntu-latest")

    def test_complete_normalizes_status(self, monkeypatch) -> None:
        client = APIClient("http://api.local", "agent-1")
        seen = []
        monkeypatch.setattr(client, "_request", lambda method, path, data=None: seen.append((path, data)) or {})

        client.complete_lease("c1", {"status": "weird", "steps": [], "logs": ""})
        path, body = seen[0]
        assert path == "/leases/c1/complete"
        assert body["status"] == "failure"
        assert body["agent_id"] == "agent-1"
