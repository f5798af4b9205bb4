"""Shared fixtures for the mockwire test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from mockwire.engine import Mocker


@pytest.fixture
def engine() -> Iterator[Mocker]:
    """A fresh engine per test, reset afterwards."""
    mocker = Mocker()
    yield mocker
    mocker.reset()
