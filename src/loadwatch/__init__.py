"""Track progress of categorized loading operations and notify listeners."""

from loadwatch.core.categories import LoadingCategory, categories_match
from loadwatch.core.listener import LoadingAction, LoadingStateListener, PhaseRouter
from loadwatch.core.loading_state import ChangeKind, LoadingState, LoadingStateChanged
from loadwatch.core.phases import LoadingPhase, LoadingPhases, is_success_phase
from loadwatch.core.store import LoadingStore, Subscription

__version__ = "0.1.0"

__all__ = [
    "ChangeKind",
    "LoadingAction",
    "LoadingCategory",
    "LoadingPhase",
    "LoadingPhases",
    "LoadingState",
    "LoadingStateChanged",
    "LoadingStateListener",
    "LoadingStore",
    "PhaseRouter",
    "Subscription",
    "categories_match",
    "is_success_phase",
]
