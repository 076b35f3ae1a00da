"""Shared fixtures for the scanner tests."""

import pytest

from scanner.app.admission import AdmissionConfig, AdmissionDecider


class FakeClock:
    """Manually advanced time source for admission tests."""

    def __init__(self, start: float = 1_000.0):
        self.start = start
        self.now = start

    def __call__(self) -> float:
        return self.now

    def at(self, offset: float) -> float:
        """Move to start + offset seconds and return the new time."""
        self.now = self.start + offset
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def admission_config() -> AdmissionConfig:
    return AdmissionConfig(
        max_requests=3,
        window_seconds=30.0,
        block_seconds=120.0,
        cooldown_seconds=30.0,
    )


@pytest.fixture
def decider(admission_config, clock) -> AdmissionDecider:
    return AdmissionDecider(admission_config, clock=clock)
