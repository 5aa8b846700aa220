"""Loading phases and success classification.

A phase is a named lifecycle stage of a tracked operation. Terminality is fixed
when the phase is defined. Success is not stored; it is derived from the phase
id or display name (see `is_success_phase`).
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Tokens that mark a terminal phase as successful (case-insensitive substring match).
SUCCESS_TOKENS: tuple[str, ...] = ("complete", "success", "done", "finished")


@dataclass(frozen=True, slots=True)
class LoadingPhase:
    """Lifecycle stage of a loading operation.

    Equality and hashing use `id` only, so two phases with the same id but
    different display names are the same phase.

    Attributes:
        id: Stable identifier (e.g. "started", "complete").
        display_name: Human readable name shown in UIs and logs.
        is_terminal: True if no further progress is expected after this phase.
    """

    id: str
    display_name: str = field(default="", compare=False)
    is_terminal: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError(f"LoadingPhase id must be a non-empty string, got {self.id!r}")
        if not self.display_name:
            object.__setattr__(self, "display_name", self.id)

    def __str__(self) -> str:
        return self.display_name


class LoadingPhases:
    """Built-in phase registry.

    Applications may define more phases with `LoadingPhase(...)`; the system
    only relies on `is_terminal` and `is_success_phase()`.
    """

    STARTED = LoadingPhase("started", "Started", is_terminal=False)
    IN_PROGRESS = LoadingPhase("progress", "In Progress", is_terminal=False)
    COMPLETE = LoadingPhase("complete", "Complete", is_terminal=True)
    FAILED = LoadingPhase("failed", "Failed", is_terminal=True)
    CANCELLED = LoadingPhase("cancelled", "Cancelled", is_terminal=True)

    @classmethod
    def all(cls) -> list[LoadingPhase]:
        return [cls.STARTED, cls.IN_PROGRESS, cls.COMPLETE, cls.FAILED, cls.CANCELLED]

    @classmethod
    def by_id(cls, phase_id: str) -> LoadingPhase | None:
        key = phase_id.lower()
        for phase in cls.all():
            if phase.id == key:
                return phase
        return None


def is_success_phase(phase: LoadingPhase) -> bool:
    """Return True if the phase id or display name contains a success token.

    Any phase whose id and display name both lack "complete", "success",
    "done" and "finished" is not a success, so a custom terminal phase such
    as "aborted" classifies as a failure.
    """
    names = (phase.id.lower(), phase.display_name.lower())
    return any(token in name for name in names for token in SUCCESS_TOKENS)
