"""Tests for the pipeline DSL and toolchain presets."""

import pytest

from matrixci.dsl import build, matrix, pipeline, sh
from matrixci.model import Step
from matrixci.step_workflows.toolchains import toolchain_env, verification_steps


class TestPipelineHelper:
    def test_steps_keep_declared_order(self) -> None:
        p = pipeline("CI", sh("Format", "a"), sh("Build", "b"), sh("Test", "c"))
        assert [s.name for s in p.steps] == ["Format", "Build", "Test"]

    def test_steps_list_comes_first(self) -> None:
        p = pipeline("CI", sh("Test", "c"), steps_list=[sh("Format", "a")])
        assert [s.name for s in p.steps] == ["Format", "Test"]

    def test_default_cwd(self) -> None:
        p = pipeline("CI", sh("Format", "a"), sh("Build", "b", cwd="sub"), cwd="proj")
        assert [s.cwd for s in p.steps] == ["proj", "sub"]

    def test_requires_steps(self) -> None:
        with pytest.raises(ValueError, match="at least one step"):
            pipeline("CI")

    def test_requires_os(self) -> None:
        with pytest.raises(ValueError, match="at least one OS"):
            pipeline("CI", sh("Test", "t"), os_matrix=[])

    def test_duplicate_steps_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate step names"):
            pipeline("CI", sh("Test", "a"), sh("Test", "b"))

    def test_duplicate_os_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate OS"):
            pipeline("CI", sh("Test", "a"), os_matrix=["ubuntu-latest", "ubuntu-latest"])

    def test_env_values_become_strings(self) -> None:
        p = pipeline("CI", sh("Test", "t"), env={"RETRIES": 0})
        assert p.env == {"RETRIES": "0"}


class TestBuilder:
    def test_build(self) -> None:
        p = (
            build("CI")
            .define_step("Format", "fmt --check")
            .define_step("Test", "test")
            .runs_on("ubuntu-latest", "macos-latest")
            .on("push")
            .on_branches("main", "release")
            .with_env(COLOR="always")
            .named_job("verify-all")
            .build()
        )
        assert p.os_matrix == ["ubuntu-latest", "macos-latest"]
        assert p.events == ["push"]
        assert p.branches == ["main", "release"]
        assert p.env == {"COLOR": "always"}
        assert p.job_name == "verify-all"

    def test_build_without_steps(self) -> None:
        with pytest.raises(ValueError):
            build("CI").build()


def test_matrix_expands_in_order() -> None:
    assert matrix(["a", "b"]).cells(lambda v: v.upper()) == ["A", "B"]


class TestToolchains:
    def test_cargo(self) -> None:
        assert verification_steps("cargo") == [
            Step(name="Format", run="cargo fmt --check"),
            Step(name="Build", run="cargo build"),
            Step(name="Test", run="cargo test"),
        ]
        assert toolchain_env("cargo") == {"CARGO_TERM_COLOR": "always"}

    def test_extra_args_and_cwd(self) -> None:
        steps = verification_steps("python", cwd="pkg", args={"Test": "-x"})
        assert steps[2].run == "pytest -q -x"
        assert all(s.cwd == "pkg" for s in steps)

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown toolchain"):
            verification_steps("make")
