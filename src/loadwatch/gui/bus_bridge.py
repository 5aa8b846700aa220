"""Bridge between a LoadingStore and an EventBus.

Re-emits every store change as a `LoadingStateChanged` bus event so views can
subscribe on their client bus instead of holding a reference to the store.

Flow:
    store.report() -> observer -> bus.emit(LoadingStateChanged)
"""

from __future__ import annotations

from typing import Optional

from loadwatch.core.loading_state import LoadingStateChanged
from loadwatch.core.store import LoadingStore, Subscription
from loadwatch.gui.bus import EventBus


class LoadingBusBridge:
    """Forward store change notifications onto an EventBus.

    Attributes:
        _store: Shared LoadingStore (process-level).
        _bus: EventBus instance (per-client).
    """

    def __init__(self, store: LoadingStore, bus: EventBus) -> None:
        self._store = store
        self._bus = bus
        self._subscription: Optional[Subscription] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._store.subscribe(self._on_change)

    def stop(self) -> None:
        """Unsubscribe, e.g. when the client disconnects."""
        if self._subscription is not None:
            self._store.unsubscribe(self._subscription)
            self._subscription = None

    def _on_change(self, event: LoadingStateChanged) -> None:
        if self._subscription is None:
            return
        self._bus.emit(event)
