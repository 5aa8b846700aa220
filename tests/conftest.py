"""Pytest configuration and fixtures for loadwatch tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from loadwatch.core.loading_state import LoadingStateChanged
from loadwatch.core.store import LoadingStore
from loadwatch.core.timers import ManualTimers


class StepClock:
    """Clock that moves forward one millisecond per call."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now


class EventRecorder:
    """Store observer that keeps every change event."""

    def __init__(self) -> None:
        self.events: list[LoadingStateChanged] = []

    def __call__(self, event: LoadingStateChanged) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [e.change_kind.value for e in self.events]


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(timers: ManualTimers, clock: StepClock) -> Generator[LoadingStore, None, None]:
    """Store with a 5 s cleanup delay driven by the manual timers."""
    s = LoadingStore(cleanup_delay_s=5.0, timer_factory=timers, clock=clock)
    yield s
    s.stop()


@pytest.fixture
def recorder(store: LoadingStore) -> EventRecorder:
    rec = EventRecorder()
    store.subscribe(rec)
    return rec
