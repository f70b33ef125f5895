"""Pytest configuration and shared fixtures."""

import pytest

from factories import FakePrimitive


@pytest.fixture
def fake_primitive():
    return FakePrimitive()
