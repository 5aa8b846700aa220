"""Core progress and cancellation primitives (UI-agnostic)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ProgressMessage:
    """Progress update emitted by background workers.

    Args:
        done: Completed item count.
        total: Optional total item count; None when indeterminate.
        detail: Short, optional detail string (becomes the reported message).
    """

    done: int = 0
    total: Optional[int] = None
    detail: str = ""

    @property
    def fraction(self) -> float:
        """Completed fraction clamped to [0, 1]; 0.0 when indeterminate."""
        if not self.total:
            return 0.0
        return max(0.0, min(1.0, self.done / self.total))


ProgressCallback = Callable[[ProgressMessage], None]


class CancelledError(Exception):
    """Raised when a worker notices its cancel request."""
