"""Loading panel view and its bus bindings.

`LoadingPanelView` shows the phase, message and progress of one loading
state. `LoadingPanelBindings` feeds it from `LoadingStateChanged` events on a
client EventBus.
"""

from __future__ import annotations

from typing import Optional

from nicegui import ui

from loadwatch.core.loading_state import ChangeKind, LoadingState, LoadingStateChanged
from loadwatch.core.utils.logging import get_logger
from loadwatch.gui.bus import EventBus

logger = get_logger(__name__)


class LoadingPanelView:
    """Phase/message/progress display for a loading state.

    Lifecycle:
        - UI elements are created in render() (not __init__) so they land in
          the current NiceGUI container
        - Data updates via set_state() (called by bindings)

    Format strings use `str.format` with the value as the single positional
    argument, e.g. "Status: {0}" or "{0:.0%}".

    Attributes:
        message_format: Format for the message label.
        progress_format: Format for the progress label (value in [0, 1]).
        phase_format: Format for the phase label (phase display name).
    """

    def __init__(
        self,
        *,
        message_format: str = "{0}",
        progress_format: str = "{0:.0%}",
        phase_format: str = "{0}",
    ) -> None:
        self.message_format = message_format
        self.progress_format = progress_format
        self.phase_format = phase_format

        # UI components (created in render())
        self._phase_label: Optional[ui.label] = None
        self._message_label: Optional[ui.label] = None
        self._progress_label: Optional[ui.label] = None
        self._progress_bar: Optional[ui.linear_progress] = None

        self._current_state: Optional[LoadingState] = None

    @property
    def current_state(self) -> Optional[LoadingState]:
        return self._current_state

    def render(self) -> None:
        """Create the panel UI inside the current container."""
        with ui.column().classes("w-full gap-1"):
            with ui.row().classes("w-full items-center justify-between"):
                self._phase_label = ui.label("").classes("font-semibold")
                self._progress_label = ui.label("")
            self._progress_bar = ui.linear_progress(value=0, show_value=False).classes("w-full")
            self._message_label = ui.label("").classes("text-sm")
        # Re-apply a state received before render()
        if self._current_state is not None:
            self._sync_ui()

    def set_state(self, state: LoadingState) -> None:
        """Store `state` and refresh every widget."""
        self._current_state = state
        self._sync_ui()

    def _sync_ui(self) -> None:
        state = self._current_state
        if state is None:
            return
        if self._message_label is not None and state.message:
            self._message_label.set_text(self._format(self.message_format, state.message))
        if self._progress_label is not None:
            self._progress_label.set_text(self._format(self.progress_format, state.progress))
        if self._phase_label is not None:
            self._phase_label.set_text(self._format(self.phase_format, state.phase.display_name))
        if self._progress_bar is not None:
            self._progress_bar.value = state.progress

    @staticmethod
    def _format(fmt: str, value: object) -> str:
        try:
            return fmt.format(value)
        except (ValueError, IndexError, KeyError) as exc:
            logger.warning(f"Bad format string {fmt!r}: {exc}")
            return str(value)


class LoadingPanelBindings:
    """Subscribe a LoadingPanelView to LoadingStateChanged bus events.

    Attributes:
        loading_id: If set, only this id updates the panel; otherwise every
            added/updated state does.
    """

    def __init__(self, bus: EventBus, view: LoadingPanelView, *, loading_id: Optional[str] = None) -> None:
        self._bus = bus
        self._view = view
        self.loading_id = loading_id
        bus.subscribe(LoadingStateChanged, self._on_loading_state_changed)

    def teardown(self) -> None:
        self._bus.unsubscribe(LoadingStateChanged, self._on_loading_state_changed)

    def _on_loading_state_changed(self, event: LoadingStateChanged) -> None:
        if event.change_kind is ChangeKind.REMOVED:
            return
        if self.loading_id is not None and event.state.id != self.loading_id:
            return
        self._view.set_state(event.state)
