"""Pytest configuration and shared fixtures."""

import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mdtasks.status import StatusRegistry  # noqa: E402


@pytest.fixture
def registry():
    """Registry with the four built-in statuses."""
    return StatusRegistry.default()


@pytest.fixture
def today():
    return date(2024, 1, 1)
