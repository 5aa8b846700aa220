"""Tests for LoadingStateListener (filter, gating, classification) and PhaseRouter."""

from __future__ import annotations

import logging

import pytest

from loadwatch.core.categories import LoadingCategory
from loadwatch.core.listener import (
    LoadingAction,
    LoadingStateListener,
    PhaseRouter,
    classify_state,
    route_phase,
)
from loadwatch.core.loading_state import LoadingState
from loadwatch.core.phases import LoadingPhase, LoadingPhases

DATA = LoadingCategory.DATA
ANALYTICS = LoadingCategory.ANALYTICS
X = LoadingCategory.MOLECULES
Y = LoadingCategory.GIS


class ActionLog:
    """Connects to the four action signals and records (action, id)."""

    def __init__(self, listener) -> None:
        self.calls: list[tuple[str, str]] = []
        listener.started.connect(lambda s: self.calls.append(("started", s.id)))
        listener.progress.connect(lambda s: self.calls.append(("progress", s.id)))
        listener.completed.connect(lambda s: self.calls.append(("completed", s.id)))
        listener.failed.connect(lambda s: self.calls.append(("failed", s.id)))

    @property
    def actions(self) -> list[str]:
        return [a for a, _ in self.calls]


def _listener(store, **kwargs) -> tuple[LoadingStateListener, ActionLog]:
    listener = LoadingStateListener(store, **kwargs)
    log = ActionLog(listener)
    assert listener.start()
    return listener, log


@pytest.mark.parametrize(
    "phase, progress, expected",
    [
        (LoadingPhases.STARTED, 0.0, LoadingAction.STARTED),
        (LoadingPhases.IN_PROGRESS, 0.0, LoadingAction.STARTED),
        (LoadingPhases.IN_PROGRESS, 0.4, LoadingAction.PROGRESS),
        (LoadingPhases.COMPLETE, 1.0, LoadingAction.COMPLETED),
        (LoadingPhases.FAILED, 1.0, LoadingAction.FAILED),
        (LoadingPhases.CANCELLED, 0.0, LoadingAction.FAILED),
        (LoadingPhase("upload_success", is_terminal=True), 1.0, LoadingAction.COMPLETED),
    ],
)
def test_classify_state(phase, progress, expected) -> None:
    state = LoadingState(id="a", phase=phase, progress=progress)
    assert classify_state(state) is expected


def test_started_then_completed(store) -> None:
    _, log = _listener(store, categories=DATA)
    store.report("job1", LoadingPhases.STARTED, DATA, 0, "starting")
    store.report("job1", LoadingPhases.COMPLETE, DATA, 1, "done")
    assert log.calls == [("started", "job1"), ("completed", "job1")]


def test_failed_fires_without_prior_start(store) -> None:
    _, log = _listener(store, categories=ANALYTICS)
    store.report("job2", LoadingPhases.FAILED, ANALYTICS, 1, "error")
    assert log.calls == [("failed", "job2")]


def test_progress_action(store) -> None:
    _, log = _listener(store, categories=DATA)
    store.report("a", LoadingPhases.IN_PROGRESS, DATA, 0.3)
    assert log.actions == ["progress"]


def test_none_filter_never_fires(store) -> None:
    _, log = _listener(store, categories=LoadingCategory.NONE)
    for phase in LoadingPhases.all():
        store.report("a", phase, LoadingCategory.all_categories(), 0.5)
    assert log.calls == []


def test_category_mismatch_and_ignored_ids(store) -> None:
    _, log = _listener(store, categories=DATA, ignore_ids=["noisy"])
    store.report("other", LoadingPhases.STARTED, ANALYTICS)
    store.report("noisy", LoadingPhases.STARTED, DATA)
    store.report("multi", LoadingPhases.STARTED, ANALYTICS | DATA)
    assert log.calls == [("started", "multi")]


def test_gate_waits_for_all_siblings(store) -> None:
    _, log = _listener(store, categories=X, require_all_complete=True)
    store.report("A", LoadingPhases.STARTED, X)
    store.report("B", LoadingPhases.STARTED, X | Y)
    assert log.calls == []

    store.report("A", LoadingPhases.COMPLETE, X, 1.0)
    assert log.calls == []

    store.report("B", LoadingPhases.COMPLETE, X | Y, 1.0)
    assert log.calls == [("completed", "B")]


def test_gate_skips_ignored_siblings(store) -> None:
    _, log = _listener(store, categories=X, require_all_complete=True, ignore_ids=["slow"])
    store.report("slow", LoadingPhases.STARTED, X)
    store.report("A", LoadingPhases.COMPLETE, X, 1.0)
    assert log.calls == [("completed", "A")]


def test_gate_reports_failure_of_last_sibling(store) -> None:
    _, log = _listener(store, categories=X, require_all_complete=True)
    store.report("A", LoadingPhases.STARTED, X)
    store.report("B", LoadingPhases.COMPLETE, X, 1.0)
    store.report("A", LoadingPhases.FAILED, X, 1.0)
    assert log.calls == [("failed", "A")]


def test_removed_events_do_not_fire(store, timers) -> None:
    _, log = _listener(store, categories=DATA)
    store.report("a", LoadingPhases.COMPLETE, DATA, 1.0)
    timers.advance(5.0)
    assert store.get("a") is None
    assert log.calls == [("completed", "a")]


def test_clearing_last_unfinished_sibling_opens_gate(store) -> None:
    _, log = _listener(store, categories=X, require_all_complete=True)
    store.report("A", LoadingPhases.STARTED, X)
    store.report("B", LoadingPhases.COMPLETE, X, 1.0)
    store.report("C", LoadingPhases.COMPLETE, X, 1.0)
    assert log.calls == []

    store.clear("A")
    assert log.calls == [("completed", "C")]


def test_clearing_terminal_or_unrelated_state_does_not_refire(store) -> None:
    _, log = _listener(store, categories=X, require_all_complete=True)
    store.report("B", LoadingPhases.COMPLETE, X, 1.0)
    store.report("other", LoadingPhases.STARTED, Y)
    store.clear("other")
    store.clear("B")
    assert log.calls == [("completed", "B")]


def test_clearing_unfinished_state_without_gate_does_nothing(store) -> None:
    _, log = _listener(store, categories=X)
    store.report("A", LoadingPhases.STARTED, X)
    store.report("B", LoadingPhases.COMPLETE, X, 1.0)
    store.clear("A")
    assert log.calls == [("started", "A"), ("completed", "B")]


def test_is_any_active(store) -> None:
    listener, _ = _listener(store, categories=DATA, ignore_ids=["ignored"])
    assert not listener.is_any_active()
    store.report("ignored", LoadingPhases.STARTED, DATA)
    assert not listener.is_any_active()
    store.report("a", LoadingPhases.STARTED, DATA)
    assert listener.is_any_active()
    store.report("a", LoadingPhases.COMPLETE, DATA, 1.0)
    assert not listener.is_any_active()


def test_stop_unsubscribes(store) -> None:
    listener, log = _listener(store, categories=DATA)
    listener.stop()
    listener.stop()
    store.report("a", LoadingPhases.STARTED, DATA)
    assert log.calls == []
    assert store.observer_count() == 0
    assert not listener.active


def test_event_after_stop_is_ignored(store) -> None:
    first, first_log = _listener(store, categories=DATA)
    second, second_log = _listener(store, categories=DATA)
    # first stops second while the event is being dispatched
    first.started.connect(lambda s: second.stop())
    store.report("a", LoadingPhases.STARTED, DATA)
    assert first_log.actions == ["started"]
    assert second_log.calls == []


def test_missing_store_is_inert(store, caplog) -> None:
    listener = LoadingStateListener(None, categories=DATA, name="orphan")
    with caplog.at_level(logging.ERROR):
        assert listener.start() is False
    assert "orphan" in caplog.text
    assert not listener.active
    assert not listener.is_any_active()
    assert not listener.all_complete()

    log = ActionLog(listener)
    listener.set_store(store)
    assert not listener.active
    assert listener.start()
    store.report("a", LoadingPhases.STARTED, DATA)
    assert log.actions == ["started"]


def test_set_store_keeps_active_listener_active(store, timers, clock) -> None:
    from loadwatch.core.store import LoadingStore

    other = LoadingStore(timer_factory=timers, clock=clock)
    listener, log = _listener(store, categories=DATA)
    listener.set_store(other)
    assert listener.active
    store.report("old", LoadingPhases.STARTED, DATA)
    other.report("new", LoadingPhases.STARTED, DATA)
    assert log.calls == [("started", "new")]


def test_action_handler_exception_is_logged(store, caplog) -> None:
    listener = LoadingStateListener(store, categories=DATA)
    listener.started.connect(lambda s: 1 / 0)
    listener.start()
    seen = []
    store.subscribe(lambda e: seen.append(e.state.id))
    with caplog.at_level(logging.ERROR):
        store.report("a", LoadingPhases.STARTED, DATA)
    assert seen == ["a"]
    assert "Exception in started handler" in caplog.text


@pytest.mark.parametrize(
    "phase, expected",
    [
        (LoadingPhases.STARTED, LoadingAction.STARTED),
        (LoadingPhases.IN_PROGRESS, LoadingAction.PROGRESS),
        (LoadingPhases.COMPLETE, LoadingAction.COMPLETED),
        (LoadingPhases.FAILED, LoadingAction.FAILED),
        (LoadingPhases.CANCELLED, LoadingAction.FAILED),
        (LoadingPhase("Finished", is_terminal=True), LoadingAction.COMPLETED),
        (LoadingPhase("warming", is_terminal=False), None),
    ],
)
def test_route_phase(phase, expected) -> None:
    assert route_phase(LoadingState(id="a", phase=phase)) is expected


def test_phase_router_ignores_categories(store) -> None:
    router = PhaseRouter(store)
    log = ActionLog(router)
    assert router.start()
    store.report("a", LoadingPhases.STARTED)
    store.report("a", LoadingPhases.IN_PROGRESS, progress=0.0)
    store.report("a", LoadingPhase("warming"))
    store.report("a", LoadingPhases.COMPLETE, progress=1.0)
    store.clear("b")
    assert log.actions == ["started", "progress", "completed"]

    router.stop()
    store.report("a", LoadingPhases.STARTED)
    assert len(log.calls) == 3


def test_phase_router_without_store() -> None:
    router = PhaseRouter(None)
    assert router.start() is False
    assert not router.active
