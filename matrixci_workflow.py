# matrixci_workflow.py
# Format, Build & Test on every OS for pushes and pull requests to main.
from __future__ import annotations

from matrixci.dsl import pipeline as make_pipeline
from matrixci.step_workflows.toolchains import toolchain_env, verification_steps


def pipeline():
    return make_pipeline(
        "CI",
        steps_list=verification_steps("cargo"),
        os_matrix=["ubuntu-latest", "windows-latest", "macos-latest"],
        branches=["main"],
        events=["push", "pull_request"],
        env=toolchain_env("cargo"),
        job_name="Format, Build & Test",
    )
