"""Test fixtures for file-processor tests."""

import logging
import os
import pytest
import tempfile
import shutil
import time
from pathlib import Path
from datetime import datetime

from file_processor.models import ProcessorConfig


FIXED_TIME = datetime(2024, 3, 15, 10, 30, 45)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def input_dir(temp_dir):
    """Input directory inside the temp dir."""
    path = temp_dir / "input"
    path.mkdir()
    return path


@pytest.fixture
def output_dir(temp_dir):
    """Output directory inside the temp dir (not created)."""
    return temp_dir / "output"


@pytest.fixture
def config(input_dir, output_dir):
    """Configuration with fast timings for tests."""
    return ProcessorConfig(
        input_directory=input_dir,
        output_directory=output_dir,
        processing_interval_seconds=1,
        readiness_attempts=3,
        readiness_delay_ms=10,
        watcher_restart_delay_seconds=0.01,
    )


@pytest.fixture
def fixed_clock():
    """Clock that always returns FIXED_TIME."""
    return lambda: FIXED_TIME


@pytest.fixture
def clean_env(monkeypatch):
    """Remove FILE_PROCESSOR_* variables from the environment."""
    for name in list(os.environ):
        if name.startswith("FILE_PROCESSOR_"):
            monkeypatch.delenv(name)
    return monkeypatch


def _wait_for(condition, timeout=10.0, interval=0.05):
    """Poll condition() until it is truthy or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return bool(condition())


@pytest.fixture
def wait_for():
    """Polling helper for tests that cross thread boundaries."""
    return _wait_for


@pytest.fixture
def restore_logging():
    """Put the root logger back the way it was after setup_logging()."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
