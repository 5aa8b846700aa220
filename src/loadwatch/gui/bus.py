"""Typed event bus with per-client isolation.

Each NiceGUI client (browser tab/window) gets its own EventBus so that
subscriptions made by one page never receive another client's events.
Loading state changes reach the bus through `LoadingBusBridge`.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Dict, List, Type, TypeVar

from nicegui import ui

from loadwatch.core.utils.logging import get_logger, trace_log

logger = get_logger(__name__)

TEvent = TypeVar("TEvent")

# Key: client ID (str), Value: EventBus instance
_CLIENT_BUSES: Dict[str, "EventBus"] = {}


@dataclass(frozen=True, slots=True)
class BusConfig:
    """Configuration for EventBus behavior.

    Attributes:
        trace: If True, log all event emissions and handler executions at INFO.
    """

    trace: bool = False


class EventBus:
    """Synchronous typed pub/sub for one client.

    Events are routed to the handlers subscribed to their exact type, in
    subscription order. A handler that raises is logged and does not stop
    delivery to the remaining handlers.
    """

    def __init__(self, client_id: str, config: BusConfig | None = None) -> None:
        self._config: BusConfig = config or BusConfig()
        self._subs: DefaultDict[Type[Any], List[Callable[[Any], None]]] = defaultdict(list)
        self._client_id: str = client_id
        logger.debug(f"[bus] Created EventBus for client {client_id}")

    @property
    def client_id(self) -> str:
        return self._client_id

    def subscribe(self, event_type: Type[TEvent], handler: Callable[[TEvent], None]) -> None:
        """Subscribe a handler for a concrete event type.

        Subscribing the same handler twice for the same type has no effect,
        so pages rebuilt during navigation do not double up.
        """
        handlers = self._subs[event_type]
        if handler in handlers:
            logger.debug(
                f"[bus] Handler {getattr(handler, '__qualname__', handler)} already subscribed "
                f"to {event_type.__name__}, skipping"
            )
            return
        handlers.append(handler)
        logger.debug(
            f"[bus] Subscribed {getattr(handler, '__qualname__', handler)} to {event_type.__name__} "
            f"(client={self._client_id}, total_handlers={len(handlers)})"
        )

    def unsubscribe(self, event_type: Type[TEvent], handler: Callable[[TEvent], None]) -> None:
        """Unsubscribe a handler. Safe to call if it was never subscribed."""
        handlers = self._subs.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        logger.debug(
            f"[bus] Unsubscribed from {event_type.__name__} "
            f"(client={self._client_id}, remaining_handlers={len(handlers)})"
        )

    def handler_count(self, event_type: Type[Any]) -> int:
        return len(self._subs.get(event_type, []))

    def emit(self, event: Any) -> None:
        """Deliver `event` to every handler subscribed to its type."""
        etype = type(event)
        handlers = list(self._subs.get(etype, []))

        trace_log(
            logger,
            self._config.trace,
            "[bus] emit %s: %s (client=%s, handlers=%d)",
            etype.__name__,
            event,
            self._client_id,
            len(handlers),
        )

        for h in handlers:
            try:
                h(event)
            except Exception:
                logger.exception(
                    f"[bus] Exception in handler {getattr(h, '__qualname__', h)} "
                    f"for {etype.__name__} (client={self._client_id})"
                )

    def clear(self) -> None:
        """Drop all subscriptions; the bus itself stays usable."""
        count = sum(len(handlers) for handlers in self._subs.values())
        self._subs.clear()
        logger.debug(f"[bus] Cleared {count} subscriptions (client={self._client_id})")


def get_client_id() -> str:
    """Current NiceGUI client id, or "default" outside a page context."""
    try:
        if hasattr(ui.context, "client") and hasattr(ui.context.client, "id"):
            return str(ui.context.client.id)
    except (AttributeError, RuntimeError):
        pass
    return "default"


def get_event_bus(config: BusConfig | None = None) -> EventBus:
    """Get or create the EventBus for the current NiceGUI client.

    For tests, create EventBus instances directly.
    """
    client_id = get_client_id()
    if client_id not in _CLIENT_BUSES:
        _CLIENT_BUSES[client_id] = EventBus(client_id, config)
        logger.info(f"[bus] Created new EventBus for client {client_id}")
    return _CLIENT_BUSES[client_id]


def clear_client_bus(client_id: str | None = None) -> None:
    """Clear and forget the bus of `client_id` (current client if None)."""
    if client_id is None:
        client_id = get_client_id()
    bus = _CLIENT_BUSES.pop(client_id, None)
    if bus is not None:
        bus.clear()
        logger.debug(f"[bus] Cleared bus for client {client_id}")
