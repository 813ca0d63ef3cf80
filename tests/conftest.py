"""Pytest fixtures for tasksched tests."""

import pytest

from helpers.logging import RecordingLogger


@pytest.fixture
def recording_logger() -> RecordingLogger:
    """Provide a logger that keeps messages for assertions."""
    return RecordingLogger()
