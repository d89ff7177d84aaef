"""Portable shell commands for step tests."""

import sys

PY = f'"{sys.executable}"'


def py(code: str) -> str:
    """Shell command running a one-line python snippet (no double quotes inside)."""
    return f'{PY} -c "{code}"'


def exit_on(os_id: str, code: int = 1) -> str:
    """Command that fails only in the cell for `os_id`."""
    return py(f"import os, sys; sys.exit({code} if os.environ['MATRIXCI_OS'] == '{os_id}' else 0)")


def append(marker: str) -> str:
    """Command appending `marker` to trace.txt in the step's working directory."""
    return py(f"open('trace.txt', 'a').write('{marker}')")
