"""NiceGUI timer factories for LoadingStore cleanup and job runner polling.

Both run their callbacks on the NiceGUI event loop, which keeps the store on a
single context.
"""

from __future__ import annotations

from typing import Callable

from nicegui import ui


def ui_timer_factory(delay_s: float, callback: Callable[[], None]) -> ui.timer:
    """One-shot timer for `LoadingStore(timer_factory=...)`."""
    return ui.timer(delay_s, callback, once=True)


def ui_poll_timer_factory(interval_s: float, callback: Callable[[], None]) -> ui.timer:
    """Repeating timer for `ReportingJobRunner(poll_timer_factory=...)`."""
    return ui.timer(interval_s, callback)
