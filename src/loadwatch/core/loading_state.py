"""Loading state records and change notifications.

`LoadingState` is an immutable snapshot. The store replaces the snapshot on
every report, so values handed to observers can never be changed behind their
back, and observers cannot change the store's copy either.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from loadwatch.core.categories import LoadingCategory, category_names
from loadwatch.core.phases import LoadingPhase, is_success_phase


class ChangeKind(str, Enum):
    """Kind of store mutation carried by a LoadingStateChanged event."""

    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class LoadingState:
    """Snapshot of one tracked loading operation.

    Attributes:
        id: Unique key in the store.
        phase: Current lifecycle phase.
        progress: Progress in [0, 1]; meaningful only while the phase is not terminal.
        message: Free-form status text.
        categories: Category mask the operation belongs to.
        timestamp: UTC time of the last field change (non-decreasing per id).
        version: Store-assigned revision, strictly increasing across every
            report made to the owning store.
    """

    id: str
    phase: LoadingPhase
    progress: float = 0.0
    message: str = ""
    categories: LoadingCategory = LoadingCategory.NONE
    timestamp: datetime = datetime.min.replace(tzinfo=timezone.utc)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def is_success(self) -> bool:
        """True for a terminal phase classified as success."""
        return self.phase.is_terminal and is_success_phase(self.phase)

    def with_changes(
        self,
        *,
        phase: LoadingPhase,
        progress: float,
        message: str,
        categories: LoadingCategory,
        now: datetime,
        version: int,
    ) -> "LoadingState":
        """Return the next revision of this state.

        The timestamp moves only when a field actually changes and never goes
        backwards, even if the clock does.
        """
        changed = (
            phase.id != self.phase.id
            or phase.display_name != self.phase.display_name
            or progress != self.progress
            or message != self.message
            or categories != self.categories
        )
        timestamp = max(self.timestamp, now) if changed else self.timestamp
        return replace(
            self,
            phase=phase,
            progress=progress,
            message=message,
            categories=categories,
            timestamp=timestamp,
            version=version,
        )

    def __str__(self) -> str:
        cats = "|".join(category_names(self.categories)) or "NONE"
        return (
            f"LoadingState(id: {self.id}, phase: {self.phase.display_name}, "
            f"progress: {self.progress:.0%}, categories: {cats}, message: {self.message!r})"
        )


@dataclass(frozen=True, slots=True)
class LoadingStateChanged:
    """Change notification emitted by the store once per mutation.

    Attributes:
        state: Snapshot after the change (for REMOVED, the last known state).
        change_kind: ADDED, UPDATED or REMOVED.
    """

    state: LoadingState
    change_kind: ChangeKind
