"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from src.pm_ledger.application.service import Ledger
from src.pm_resolution.application.service import ResolutionEngine


class FakeClock:
    """Deterministic clock; tests move time forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def ledger(clock: FakeClock) -> Ledger:
    """In-memory ledger: start balance 1000, market creation cost 50, no file."""
    return Ledger(clock=clock, start_balance="1000", creation_cost="50")


@pytest.fixture
def resolution(ledger: Ledger) -> ResolutionEngine:
    return ResolutionEngine(ledger)
