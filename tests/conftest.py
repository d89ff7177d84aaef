"""Pytest configuration for matrixci tests."""

import os
import tempfile

import pytest

# The control plane reads its settings at import time
_DB_DIR = tempfile.mkdtemp(prefix="matrixci-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///" + os.path.join(_DB_DIR, "matrixci.db"))
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ["CLAIM_TIMEOUT_SECONDS"] = "0"


@pytest.fixture(autouse=True)
def reset_console():
    """Fresh, non-debug console for every test."""
    from matrixci.ui.console import Console, set_console

    set_console(Console())
    yield
    set_console(Console())
