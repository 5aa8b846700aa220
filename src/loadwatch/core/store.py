"""Authoritative store of loading states.

Producers call `report()` with an operation id; the store upserts the state,
notifies observers synchronously in registration order, and removes terminal
states after a delay. The store is single-context: all calls, and all timer
callbacks, must happen on one thread or one cooperative loop. It does no
locking of its own.
"""

from __future__ import annotations

import itertools
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Deque, Dict, Iterable, List, Optional, Protocol, Tuple, Union

from loadwatch.core.categories import LoadingCategory, categories_match
from loadwatch.core.config import DEFAULT_CLEANUP_DELAY_S
from loadwatch.core.loading_state import ChangeKind, LoadingState, LoadingStateChanged
from loadwatch.core.phases import LoadingPhase
from loadwatch.core.timers import TimerFactory, TimerHandle, asyncio_timer_factory
from loadwatch.core.utils.logging import get_logger, trace_log

if TYPE_CHECKING:
    from loadwatch.core.config import LoadwatchConfig

logger = get_logger(__name__)


class LoadingObserver(Protocol):
    def on_loading_state_changed(self, event: LoadingStateChanged) -> None: ...


ChangeHandler = Callable[[LoadingStateChanged], None]
Clock = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class Subscription:
    """Handle returned by `LoadingStore.subscribe()`."""

    id: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LoadingStore:
    """Id -> LoadingState map with change fan-out and deferred cleanup.

    Attributes:
        cleanup_delay_s: Seconds a terminal state stays before automatic removal.
        trace: If True, log every mutation at INFO instead of DEBUG.
    """

    def __init__(
        self,
        *,
        cleanup_delay_s: float = DEFAULT_CLEANUP_DELAY_S,
        timer_factory: Optional[TimerFactory] = None,
        clock: Optional[Clock] = None,
        trace: bool = False,
    ) -> None:
        """Initialize an empty, running store.

        Args:
            cleanup_delay_s: Delay before a terminal state is removed. Must be >= 0.
            timer_factory: `(delay_s, callback) -> handle` used for deferred cleanup.
                Defaults to `asyncio_timer_factory` (needs a running event loop
                when a terminal state is reported).
            clock: Returns the current UTC time; used for state timestamps.
            trace: Log every mutation at INFO.
        """
        if not math.isfinite(cleanup_delay_s) or cleanup_delay_s < 0:
            raise ValueError(f"cleanup_delay_s must be a finite number >= 0, got {cleanup_delay_s}")
        self.cleanup_delay_s: float = float(cleanup_delay_s)
        self.trace: bool = trace
        self._timer_factory: TimerFactory = timer_factory or asyncio_timer_factory
        self._clock: Clock = clock or _utc_now

        self._states: Dict[str, LoadingState] = {}
        self._observers: List[Tuple[Subscription, ChangeHandler, object]] = []
        # id -> (version the cleanup was scheduled for, timer handle)
        self._cleanups: Dict[str, Tuple[int, TimerHandle]] = {}
        self._versions = itertools.count(1)
        self._sub_ids = itertools.count(1)
        self._running: bool = True
        self._pending: Deque[LoadingStateChanged] = deque()
        self._delivering: bool = False

    @classmethod
    def from_config(
        cls,
        config: "LoadwatchConfig",
        *,
        timer_factory: Optional[TimerFactory] = None,
        clock: Optional[Clock] = None,
    ) -> "LoadingStore":
        return cls(
            cleanup_delay_s=config.data.cleanup_delay_s,
            timer_factory=timer_factory,
            clock=clock,
            trace=config.data.trace,
        )

    # -----------------------------
    # Lifecycle
    # -----------------------------
    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        trace_log(logger, self.trace, "[store] started")

    def stop(self) -> None:
        """Cancel pending cleanups and drop every state without emitting events.

        Observers stay registered; the store can be started again.
        """
        for _, handle in self._cleanups.values():
            handle.cancel()
        self._cleanups.clear()
        dropped = len(self._states)
        self._states.clear()
        self._running = False
        trace_log(logger, self.trace, "[store] stopped, dropped %d state(s)", dropped)

    # -----------------------------
    # Observers
    # -----------------------------
    def subscribe(self, handler: Union[ChangeHandler, LoadingObserver]) -> Subscription:
        """Register an observer and return its subscription handle.

        `handler` is either a callable taking a LoadingStateChanged, or an
        object with an `on_loading_state_changed(event)` method. Subscribing
        the same handler twice returns the existing subscription.
        """
        key: object = handler
        if not callable(handler):
            method = getattr(handler, "on_loading_state_changed", None)
            if method is None:
                raise TypeError(
                    f"{handler!r} is neither callable nor has on_loading_state_changed()"
                )
            fn: ChangeHandler = method
        else:
            fn = handler

        for sub, _, existing in self._observers:
            if existing == key:
                logger.debug("[store] handler %r already subscribed, skipping", handler)
                return sub

        sub = Subscription(next(self._sub_ids))
        self._observers.append((sub, fn, key))
        trace_log(
            logger, self.trace, "[store] subscribed %r (total_observers=%d)", handler, len(self._observers)
        )
        return sub

    def unsubscribe(self, subscription: Optional[Subscription]) -> None:
        """Remove an observer. Unknown or already-removed handles are ignored."""
        if subscription is None:
            return
        for i, (sub, _, _) in enumerate(self._observers):
            if sub == subscription:
                del self._observers[i]
                trace_log(
                    logger,
                    self.trace,
                    "[store] unsubscribed %s (remaining_observers=%d)",
                    subscription,
                    len(self._observers),
                )
                return

    def observer_count(self) -> int:
        return len(self._observers)

    def _emit(self, event: LoadingStateChanged) -> None:
        """Queue `event` and deliver it to every observer.

        A report() or clear() made from inside an observer only queues its
        event; the outermost call delivers queued events one at a time, so
        every observer sees changes in the order they were made.
        """
        self._pending.append(event)
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending:
                self._deliver(self._pending.popleft())
        finally:
            self._delivering = False

    def _deliver(self, event: LoadingStateChanged) -> None:
        observers = list(self._observers)
        trace_log(
            logger,
            self.trace,
            "[store] emit %s: %s (observers=%d)",
            event.change_kind.value,
            event.state,
            len(observers),
        )
        for sub, fn, _ in observers:
            try:
                fn(event)
            except Exception:
                logger.exception(f"[store] Exception in observer {sub} for {event.state.id}")

    # -----------------------------
    # Producer API
    # -----------------------------
    def report(
        self,
        id: str,
        phase: LoadingPhase,
        categories: LoadingCategory = LoadingCategory.NONE,
        progress: float = 0.0,
        message: str = "",
    ) -> None:
        """Create or update the state for `id` and notify observers.

        Never raises for bad input: an empty id, a non-LoadingPhase phase or
        an unusable category mask is logged and the call is ignored.
        Progress is clamped to [0, 1]; a non-finite value becomes 0.

        Args:
            id: Operation id (non-empty).
            phase: New phase.
            categories: Category mask of the operation.
            progress: Progress fraction.
            message: Status text.
        """
        if not isinstance(id, str) or not id:
            logger.warning(f"[store] report() called with null/empty id {id!r}; ignored")
            return
        if not self._running:
            logger.warning(f"[store] report() for {id!r} while stopped; ignored")
            return
        if not isinstance(phase, LoadingPhase):
            logger.warning(f"[store] report() for {id!r} with invalid phase {phase!r}; ignored")
            return
        try:
            categories = LoadingCategory(categories)
        except (TypeError, ValueError):
            logger.warning(f"[store] report() for {id!r} with invalid categories {categories!r}; ignored")
            return

        progress = self._sanitize_progress(id, progress)
        message = "" if message is None else str(message)
        now = self._clock()
        version = next(self._versions)

        previous = self._states.get(id)
        if previous is None:
            state = LoadingState(
                id=id,
                phase=phase,
                progress=progress,
                message=message,
                categories=categories,
                timestamp=now,
                version=version,
            )
            kind = ChangeKind.ADDED
        else:
            state = previous.with_changes(
                phase=phase,
                progress=progress,
                message=message,
                categories=categories,
                now=now,
                version=version,
            )
            kind = ChangeKind.UPDATED

        self._states[id] = state
        self._cancel_cleanup(id)
        # Scheduled before the fan-out so a nested report() from an observer
        # cancels this cleanup instead of being cancelled by it.
        if phase.is_terminal:
            self._schedule_cleanup(state)

        self._emit(LoadingStateChanged(state=state, change_kind=kind))

    def clear(self, id: str) -> None:
        """Remove `id` and emit REMOVED with its last state. No-op if absent."""
        state = self._states.pop(id, None)
        if state is None:
            return
        self._cancel_cleanup(id)
        trace_log(logger, self.trace, "[store] cleared %s", id)
        self._emit(LoadingStateChanged(state=state, change_kind=ChangeKind.REMOVED))

    def _sanitize_progress(self, id: str, progress: float) -> float:
        try:
            value = float(progress)
        except (TypeError, ValueError):
            logger.warning(f"[store] invalid progress {progress!r} for {id!r}; using 0")
            return 0.0
        if not math.isfinite(value):
            logger.warning(f"[store] non-finite progress {progress!r} for {id!r}; using 0")
            return 0.0
        return max(0.0, min(1.0, value))

    # -----------------------------
    # Deferred cleanup
    # -----------------------------
    def _schedule_cleanup(self, state: LoadingState) -> None:
        sid, version = state.id, state.version
        try:
            handle = self._timer_factory(self.cleanup_delay_s, lambda: self._run_cleanup(sid, version))
        except RuntimeError as exc:
            logger.warning(f"[store] cannot schedule cleanup for {sid!r}: {exc}; it stays until cleared")
            return
        self._cleanups[sid] = (version, handle)
        trace_log(logger, self.trace, "[store] cleanup of %s v%d in %.3fs", sid, version, self.cleanup_delay_s)

    def _cancel_cleanup(self, id: str) -> None:
        pending = self._cleanups.pop(id, None)
        if pending is not None:
            pending[1].cancel()

    def _run_cleanup(self, id: str, version: int) -> None:
        pending = self._cleanups.get(id)
        if pending is not None and pending[0] == version:
            del self._cleanups[id]

        current = self._states.get(id)
        if current is None:
            trace_log(logger, self.trace, "[store] cleanup of %s skipped: already removed", id)
            return
        if current.version != version or not current.is_terminal:
            trace_log(
                logger,
                self.trace,
                "[store] cleanup of %s v%d skipped: superseded by v%d (%s)",
                id,
                version,
                current.version,
                current.phase.id,
            )
            return
        self.clear(id)

    def pending_cleanups(self) -> List[str]:
        """Ids that currently have a cleanup scheduled."""
        return list(self._cleanups)

    # -----------------------------
    # Queries
    # -----------------------------
    def get(self, id: str) -> Optional[LoadingState]:
        return self._states.get(id)

    def all(self) -> List[LoadingState]:
        """Snapshot list of every state, in insertion order."""
        return list(self._states.values())

    def by_categories(self, mask: LoadingCategory | int) -> List[LoadingState]:
        """Snapshot list of states whose categories intersect `mask`."""
        return [s for s in self._states.values() if categories_match(s.categories, mask)]

    def is_any_active(self, mask: LoadingCategory | int, ignore_ids: Iterable[str] = ()) -> bool:
        """True if any non-ignored state matching `mask` is not terminal."""
        ignored = set(ignore_ids)
        return any(
            not s.is_terminal and s.id not in ignored for s in self.by_categories(mask)
        )

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, id: object) -> bool:
        return id in self._states
