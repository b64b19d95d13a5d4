from __future__ import annotations

import pytest

from tests.breakwater.support.fakes import FakeLogger, FakeScheduler


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    """Provide a simulated clock/scheduler per test."""
    return FakeScheduler()
