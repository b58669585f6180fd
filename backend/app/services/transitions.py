"""Allowed status changes for games."""

from ..exceptions import FailedPrecondition

GAME_STATUSES = ("pending_validation", "validated", "disputed", "cancelled")

_VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending_validation": frozenset({"validated", "disputed", "cancelled"}),
    "validated": frozenset({"pending_validation", "cancelled"}),
    "disputed": frozenset({"pending_validation", "cancelled"}),
    "cancelled": frozenset(),
}


def can_transition_game_status(current: str, target: str) -> bool:
    return target in _VALID_TRANSITIONS.get(current, frozenset())


def require_game_transition(current: str, target: str) -> None:
    if not can_transition_game_status(current, target):
        raise FailedPrecondition(
            f"Game cannot move from {current!r} to {target!r}."
        )
