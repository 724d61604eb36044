"""Pytest configuration and shared fixtures."""

import io

import pytest


@pytest.fixture
def stdout() -> io.BytesIO:
    """Captures forwarded standard output."""
    return io.BytesIO()


@pytest.fixture
def stderr() -> io.BytesIO:
    """Captures forwarded standard error."""
    return io.BytesIO()
