"""Internal application services."""

from .approval import ValidationView, apply_decision, resolve
from .leaderboard_delta import LeaderboardDelta, compute_leaderboard_delta
from .pairing import generate_incremental_pairings, generate_precomputed_schedule
from .transitions import can_transition_game_status
from .validation import (
    assert_participants_unique,
    assert_score_map_matches_participants,
    normalize_doc_id,
    resolve_rules,
)

__all__ = [
    "ValidationView",
    "apply_decision",
    "resolve",
    "LeaderboardDelta",
    "compute_leaderboard_delta",
    "generate_incremental_pairings",
    "generate_precomputed_schedule",
    "can_transition_game_status",
    "assert_participants_unique",
    "assert_score_map_matches_participants",
    "normalize_doc_id",
    "resolve_rules",
]
