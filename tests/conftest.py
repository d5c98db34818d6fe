"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add the src directory to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_WORKER = FIXTURES_DIR / "fake_worker.py"


def worker_argv(*args: str) -> tuple[str, ...]:
    """Command line running the fake worker with ``args``."""
    return (sys.executable, str(FAKE_WORKER), *args)


@pytest.fixture
def fake_worker() -> Path:
    return FAKE_WORKER


@pytest.fixture
def src_env() -> dict[str, str]:
    """Environment that lets a child interpreter import cargo_fuzz."""
    path = os.environ.get("PYTHONPATH", "")
    return {"PYTHONPATH": f"{SRC_DIR}{os.pathsep}{path}" if path else str(SRC_DIR)}


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    """Every test starts from a default configuration."""
    for name in list(os.environ):
        if name.startswith("CARGO_FUZZ_"):
            monkeypatch.delenv(name)
    # Terminal overrides honoured by rich
    for name in ("FORCE_COLOR", "NO_COLOR", "TTY_COMPATIBLE"):
        monkeypatch.delenv(name, raising=False)
    from cargo_fuzz.config import reload_config

    reload_config()
    yield
    reload_config()
