"""Pytest fixtures for GUI tests."""

from __future__ import annotations

from typing import Generator

import pytest

from loadwatch.gui.bus import BusConfig, EventBus


@pytest.fixture
def bus() -> Generator[EventBus, None, None]:
    """EventBus created directly, so no NiceGUI client context is needed."""
    test_bus = EventBus(client_id="test-client", config=BusConfig(trace=False))
    yield test_bus
    test_bus.clear()
