"""Subscriber side: filter store changes and route them to actions.

`LoadingStateListener` reacts to states in its categories, optionally waits
until every relevant operation is terminal, then emits exactly one of its
`started`, `progress`, `completed` or `failed` signals per event.

`PhaseRouter` is the simpler variant: no category filter, no gating, routing
by well-known phase ids.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from psygnal import Signal

from loadwatch.core.categories import LoadingCategory, categories_match
from loadwatch.core.loading_state import ChangeKind, LoadingState, LoadingStateChanged
from loadwatch.core.phases import is_success_phase
from loadwatch.core.utils.logging import get_logger, trace_log

if TYPE_CHECKING:
    from loadwatch.core.store import LoadingStore, Subscription

logger = get_logger(__name__)


class LoadingAction(str, Enum):
    """Action a listener fires for a state."""

    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


def classify_state(state: LoadingState) -> LoadingAction:
    """Map a state to the action it triggers.

    terminal + success -> COMPLETED, terminal otherwise -> FAILED,
    non-terminal with progress > 0 -> PROGRESS, else STARTED.
    """
    if state.phase.is_terminal:
        return LoadingAction.COMPLETED if is_success_phase(state.phase) else LoadingAction.FAILED
    if state.progress > 0:
        return LoadingAction.PROGRESS
    return LoadingAction.STARTED


class _ActionSignals:
    """Signals shared by both listener flavours. Each emits the LoadingState."""

    started = Signal(object)
    progress = Signal(object)
    completed = Signal(object)
    failed = Signal(object)

    def _dispatch(self, action: LoadingAction, state: LoadingState) -> None:
        signal = {
            LoadingAction.STARTED: self.started,
            LoadingAction.PROGRESS: self.progress,
            LoadingAction.COMPLETED: self.completed,
            LoadingAction.FAILED: self.failed,
        }[action]
        try:
            signal.emit(state)
        except Exception:
            logger.exception(f"Exception in {action.value} handler for {state.id}")


class LoadingStateListener(_ActionSignals):
    """Category-filtered, optionally gated listener on a LoadingStore.

    Lifecycle:
        - `start()` subscribes to the store; `stop()` unsubscribes. Both are idempotent.
        - Without a store, `start()` logs an error and the listener stays inert
          until `set_store()` provides one.

    Attributes:
        categories: Category filter. NONE means the listener never responds.
        ignore_ids: Ids that never trigger an action and are skipped when gating.
        require_all_complete: If True, act only once every non-ignored state in
            `categories` is terminal. Clearing the last unfinished state also
            opens the gate, for the newest remaining terminal state.
        trace: Log every received event and dispatched action at INFO.
        name: Label used in log lines.
    """

    def __init__(
        self,
        store: Optional["LoadingStore"],
        *,
        categories: LoadingCategory = LoadingCategory.NONE,
        ignore_ids: Iterable[str] = (),
        require_all_complete: bool = False,
        trace: bool = False,
        name: str = "LoadingStateListener",
    ) -> None:
        self._store: Optional["LoadingStore"] = store
        self.categories: LoadingCategory = LoadingCategory(categories)
        self.ignore_ids: frozenset[str] = frozenset(ignore_ids)
        self.require_all_complete: bool = require_all_complete
        self.trace: bool = trace
        self.name: str = name
        self._subscription: Optional["Subscription"] = None

    @property
    def store(self) -> Optional["LoadingStore"]:
        return self._store

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def start(self) -> bool:
        """Subscribe to the store. Returns False if there is no store."""
        if self._subscription is not None:
            return True
        if self._store is None:
            logger.error(f"[{self.name}] has no store assigned; listener is inert")
            return False
        self._subscription = self._store.subscribe(self.on_loading_state_changed)
        trace_log(logger, self.trace, "[%s] listening for categories: %s", self.name, self.categories)
        return True

    def stop(self) -> None:
        if self._subscription is None:
            return
        if self._store is not None:
            self._store.unsubscribe(self._subscription)
        self._subscription = None
        trace_log(logger, self.trace, "[%s] stopped listening", self.name)

    def set_store(self, store: Optional["LoadingStore"]) -> None:
        """Point the listener at another store, keeping its active/inactive status."""
        was_active = self.active
        self.stop()
        self._store = store
        if was_active:
            self.start()

    def should_respond(self, state: LoadingState) -> bool:
        """Relevance test: non-empty filter, id not ignored, categories intersect."""
        if self.categories == LoadingCategory.NONE:
            return False
        if state.id in self.ignore_ids:
            return False
        return categories_match(state.categories, self.categories)

    def all_complete(self) -> bool:
        """True if every non-ignored state matching the filter is terminal."""
        if self._store is None:
            return False
        for state in self._store.by_categories(self.categories):
            if state.id in self.ignore_ids:
                continue
            if not state.is_terminal:
                trace_log(logger, self.trace, "[%s] still waiting for %s", self.name, state.id)
                return False
        return True

    def is_any_active(self) -> bool:
        """True if any non-ignored state matching the filter is not terminal."""
        if self._store is None:
            return False
        return self._store.is_any_active(self.categories, self.ignore_ids)

    def on_loading_state_changed(self, event: LoadingStateChanged) -> None:
        if self._subscription is None:
            # Delivered after stop(); the store iterates a copy of its observers.
            return
        state = event.state
        if event.change_kind is ChangeKind.REMOVED:
            self._recheck_gate_after_removal(state)
            return
        trace_log(
            logger,
            self.trace,
            "[%s] received %s -> %s",
            self.name,
            state.id,
            state.phase.display_name,
        )
        if not self.should_respond(state):
            return
        if self.require_all_complete and not self.all_complete():
            trace_log(logger, self.trace, "[%s] waiting for all category loading to complete", self.name)
            return
        action = classify_state(state)
        trace_log(logger, self.trace, "[%s] %s for %s", self.name, action.value.upper(), state)
        self._dispatch(action, state)

    def _recheck_gate_after_removal(self, removed: LoadingState) -> None:
        """Release the gate when a clear() drops the last unfinished sibling.

        The removed state itself is never classified. If it was relevant and
        not terminal, and every remaining relevant state is terminal, the
        newest remaining one is dispatched as if it had just been reported.
        """
        if not self.require_all_complete or removed.is_terminal:
            return
        if not self.should_respond(removed) or self._store is None:
            return
        if not self.all_complete():
            return
        finished = [
            s for s in self._store.by_categories(self.categories) if s.id not in self.ignore_ids
        ]
        if not finished:
            return
        latest = max(finished, key=lambda s: s.version)
        action = classify_state(latest)
        trace_log(
            logger,
            self.trace,
            "[%s] %s for %s after %s was removed",
            self.name,
            action.value.upper(),
            latest,
            removed.id,
        )
        self._dispatch(action, latest)


# Exact phase ids PhaseRouter routes without looking at terminality.
_ROUTED_PHASE_IDS: dict[str, LoadingAction] = {
    "started": LoadingAction.STARTED,
    "progress": LoadingAction.PROGRESS,
    "complete": LoadingAction.COMPLETED,
    "failed": LoadingAction.FAILED,
}


def route_phase(state: LoadingState) -> Optional[LoadingAction]:
    """Action for PhaseRouter, or None for a non-terminal phase with an unknown id."""
    action = _ROUTED_PHASE_IDS.get(state.phase.id.lower())
    if action is not None:
        return action
    if state.phase.is_terminal:
        return LoadingAction.COMPLETED if is_success_phase(state.phase) else LoadingAction.FAILED
    return None


class PhaseRouter(_ActionSignals):
    """Ungated listener that routes every store change by phase id."""

    def __init__(self, store: Optional["LoadingStore"], *, trace: bool = False, name: str = "PhaseRouter") -> None:
        self._store: Optional["LoadingStore"] = store
        self.trace: bool = trace
        self.name: str = name
        self._subscription: Optional["Subscription"] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def start(self) -> bool:
        if self._subscription is not None:
            return True
        if self._store is None:
            logger.error(f"[{self.name}] has no store assigned; router is inert")
            return False
        self._subscription = self._store.subscribe(self.on_loading_state_changed)
        trace_log(logger, self.trace, "[%s] started listening", self.name)
        return True

    def stop(self) -> None:
        if self._subscription is None:
            return
        if self._store is not None:
            self._store.unsubscribe(self._subscription)
        self._subscription = None
        trace_log(logger, self.trace, "[%s] stopped listening", self.name)

    def on_loading_state_changed(self, event: LoadingStateChanged) -> None:
        if self._subscription is None or event.change_kind is ChangeKind.REMOVED:
            return
        state = event.state
        action = route_phase(state)
        trace_log(
            logger,
            self.trace,
            "[%s] %s phase=%s progress=%.0f%% -> %s",
            self.name,
            state.id,
            state.phase.display_name,
            state.progress * 100,
            action.value if action else "ignored",
        )
        if action is not None:
            self._dispatch(action, state)
