"""Shared fixtures for the Warden test suite."""

from __future__ import annotations

import pytest

from support import SteppingClock


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()
