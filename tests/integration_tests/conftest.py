"""Fixtures for integration tests that drive a fake engine process."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from fake_engine import FakeEngine, install_fake_engine

# The fake engine is a POSIX shell wrapper.
if sys.platform == "win32":
    collect_ignore_glob = ["test_*.py"]


@pytest.fixture
def fake_engine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeEngine:
    """Install a fake engine in a bundled layout under ``tmp_path``."""
    engine = install_fake_engine(tmp_path)
    monkeypatch.setenv("FAKE_ENGINE_LOG", str(engine.log_file))
    for name in list(os.environ):
        if name.startswith("DOCCONV_"):
            monkeypatch.delenv(name)
    return engine


@pytest.fixture
def concurrency_peaks(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[[], list[int]]:
    """Configure the ``slow`` mode and return a reader for observed peaks."""
    active = tmp_path / "active"
    active.mkdir()
    peaks = tmp_path / "peaks.txt"
    monkeypatch.setenv("FAKE_ENGINE_ACTIVE_DIR", str(active))
    monkeypatch.setenv("FAKE_ENGINE_PEAKS", str(peaks))

    def read() -> list[int]:
        if not peaks.exists():
            return []
        return [int(line) for line in peaks.read_text().splitlines() if line]

    return read
