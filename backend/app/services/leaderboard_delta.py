"""Signed leaderboard adjustments between two versions of a game result."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Sequence

Scope = Literal["competition", "global"]


@dataclass
class LeaderboardDelta:
    scope: Scope
    club_id: str
    competition_id: str | None
    user_id: str
    total_points_delta: float
    games_played_delta: int


@dataclass(frozen=True)
class VersionSnapshot:
    """The parts of a game version that feed leaderboard aggregates."""

    club_id: str
    participants: Sequence[str]
    competition_ids: Sequence[str]
    total_points: Mapping[str, float]

    @classmethod
    def from_version(cls, version: Any) -> "VersionSnapshot":
        computed = version.computed or {}
        return cls(
            club_id=version.club_id,
            participants=list(version.participants or []),
            competition_ids=list(version.competition_ids or []),
            total_points=dict(computed.get("totalPoints") or {}),
        )


def _scopes(competition_ids: Sequence[str]) -> list[tuple[Scope, str | None]]:
    if not competition_ids:
        return [("global", None)]
    return [("competition", cid) for cid in competition_ids]


def _accumulate(
    accumulator: dict[tuple[str, str | None, str], LeaderboardDelta],
    version: VersionSnapshot,
    sign: int,
) -> None:
    for user_id in version.participants:
        points = version.total_points.get(user_id, 0) or 0
        for scope, competition_id in _scopes(version.competition_ids):
            key = (scope, competition_id, user_id)
            entry = accumulator.get(key)
            if entry is None:
                accumulator[key] = LeaderboardDelta(
                    scope=scope,
                    club_id=version.club_id,
                    competition_id=competition_id,
                    user_id=user_id,
                    total_points_delta=points * sign,
                    games_played_delta=sign,
                )
            else:
                entry.total_points_delta += points * sign
                entry.games_played_delta += sign


def compute_leaderboard_delta(
    old_version: VersionSnapshot | None, new_version: VersionSnapshot
) -> list[LeaderboardDelta]:
    """Return the per-(scope, user) changes that move ``old`` to ``new``.

    ``old_version`` is ``None`` for a first validation. Entries that net to
    exactly zero points and zero games are omitted.
    """

    accumulator: dict[tuple[str, str | None, str], LeaderboardDelta] = {}
    if old_version is not None:
        _accumulate(accumulator, old_version, -1)
    _accumulate(accumulator, new_version, 1)

    return [
        delta
        for delta in accumulator.values()
        if delta.total_points_delta != 0 or delta.games_played_delta != 0
    ]
