# step_workflows/toolchains.py
from __future__ import annotations

from typing import Dict, List

from ..model import Step


# ---------------------------------------------------------------------
# Format / Build / Test presets
# ---------------------------------------------------------------------

FORMAT = "Format"
BUILD = "Build"
TEST = "Test"
STEP_ORDER = (FORMAT, BUILD, TEST)

_TOOLCHAINS: Dict[str, Dict[str, str]] = {
    "cargo": {
        FORMAT: "cargo fmt --check",
        BUILD: "cargo build",
        TEST: "cargo test",
    },
    "python": {
        FORMAT: "ruff format --check .",
        BUILD: "python -m pip install -e .",
        TEST: "pytest -q",
    },
    "npm": {
        FORMAT: "npx prettier --check .",
        BUILD: "npm ci && npm run build",
        TEST: "npm test",
    },
}

# Environment the toolchain expects on every runner
_TOOLCHAIN_ENV: Dict[str, Dict[str, str]] = {
    "cargo": {"CARGO_TERM_COLOR": "always"},
}


def toolchains() -> List[str]:
    return sorted(_TOOLCHAINS)


def verification_steps(
    toolchain: str,
    *,
    cwd: str | None = None,
    args: Dict[str, str] | None = None,
) -> List[Step]:
    """
    Turn a toolchain name into the [Format, Build, Test] step triple.

    `args` appends extra arguments per step name, e.g. {"Test": "--all"}.
    """
    commands = _TOOLCHAINS.get(toolchain)
    if commands is None:
        raise ValueError(f"Unknown toolchain: {toolchain!r} (known: {toolchains()})")

    extra = args or {}
    out: List[Step] = []
    for name in STEP_ORDER:
        cmd = commands[name]
        if extra.get(name):
            cmd = f"{cmd} {extra[name]}"
        out.append(Step(name=name, run=cmd, cwd=cwd))
    return out


def toolchain_env(toolchain: str) -> Dict[str, str]:
    return dict(_TOOLCHAIN_ENV.get(toolchain, {}))
