"""Tests for GitHub Actions workflow import/export."""

import textwrap

import pytest
import yaml

from matrixci.gha import load_github_workflow, to_github_workflow
from matrixci.model import Step
from matrixci.runner import load_pipeline

CI_YML = textwrap.dedent(
    """
    name: CI

    on:
      push:
        branches: [main]
      pull_request:
        branches: [main]

    env:
      CARGO_TERM_COLOR: always

    jobs:
      ci:
        name: Format, Build & Test
        strategy:
          matrix:
            os: [ubuntu-latest, windows-latest, macos-latest]

        runs-on: ${{ matrix.os }}
        steps:
        - uses: actions/checkout@v4
        - name: Format
          run: cargo fmt --check
        - name: Build
          run: cargo build
        - name: Test
          run: cargo test
    """
)


@pytest.fixture
def ci_yml(tmp_path):
    path = tmp_path / "ci.yml"
    path.write_text(CI_YML)
    return path


class TestLoad:
    def test_cargo_workflow(self, ci_yml) -> None:
        p = load_github_workflow(ci_yml)
        assert p.name == "CI"
        assert p.job_name == "Format, Build & Test"
        assert p.events == ["push", "pull_request"]
        assert p.branches == ["main"]
        assert p.os_matrix == ["ubuntu-latest", "windows-latest", "macos-latest"]
        assert p.env == {"CARGO_TERM_COLOR": "always"}
        assert p.steps == [
            Step(name="Format", run="cargo fmt --check"),
            Step(name="Build", run="cargo build"),
            Step(name="Test", run="cargo test"),
        ]

    def test_load_pipeline_dispatches_on_suffix(self, ci_yml) -> None:
        assert load_pipeline(ci_yml).name == "CI"

    def test_single_runner_without_matrix(self, tmp_path) -> None:
        path = tmp_path / "lint.yaml"
        path.write_text(
            textwrap.dedent(
                """
                on:
                  push:
                    branches: [main]
                jobs:
                  lint:
                    runs-on: ubuntu-latest
                    steps:
                      - run: ruff check .
                """
            )
        )
        p = load_github_workflow(path)
        assert p.name == "lint"
        assert p.os_matrix == ["ubuntu-latest"]
        assert p.events == ["push"]
        assert p.branches == ["main"]
        assert p.steps == [Step(name="step-1", run="ruff check .")]

    def test_other_actions_rejected(self, tmp_path) -> None:
        path = tmp_path / "ci.yml"
        path.write_text(CI_YML.replace("cargo build", "cargo build\n    - uses: actions/upload-artifact@v4"))
        with pytest.raises(ValueError, match="unsupported action"):
            load_github_workflow(path)

    @pytest.mark.parametrize("on", ["push", "[push, pull_request]", "{push: {branches: [main]}, pull_request: {}}"])
    def test_trigger_without_branches_rejected(self, tmp_path, on) -> None:
        path = tmp_path / "ci.yml"
        path.write_text(f"on: {on}\njobs:\n  x:\n    runs-on: ubuntu-latest\n    steps:\n      - run: cargo test\n")
        with pytest.raises(ValueError, match="has no branches filter"):
            load_github_workflow(path)

    def test_without_push_or_pr(self, tmp_path) -> None:
        path = tmp_path / "ci.yml"
        path.write_text("on: [workflow_dispatch]\njobs:\n  x:\n    runs-on: ubuntu-latest\n    steps:\n      - run: 'true'\n")
        with pytest.raises(ValueError, match="no push or pull_request"):
            load_github_workflow(path)


def test_export_round_trips(ci_yml, tmp_path) -> None:
    original = load_github_workflow(ci_yml)
    text = to_github_workflow(original)

    data = yaml.safe_load(text)
    job = data["jobs"]["ci"]
    assert job["runs-on"] == "${{ matrix.os }}"
    assert job["steps"][0] == {"uses": "actions/checkout@v4"}

    out = tmp_path / "exported.yml"
    out.write_text(text)
    assert load_github_workflow(out).to_dict() == original.to_dict()
