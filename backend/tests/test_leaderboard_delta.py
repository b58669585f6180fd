from collections import defaultdict

import pytest

from app.services.leaderboard_delta import VersionSnapshot, compute_leaderboard_delta

PLAYERS = ["a", "b", "c", "d"]


def _version(points, competition_ids=("comp-1",), participants=PLAYERS):
    return VersionSnapshot(
        club_id="club-1",
        participants=list(participants),
        competition_ids=list(competition_ids),
        total_points=dict(points),
    )


def _by_key(deltas):
    return {(d.scope, d.competition_id, d.user_id): d for d in deltas}


def test_first_validation_adds_one_game_per_player():
    new = _version({"a": 32.3, "b": 11.2, "c": -22.2, "d": -41.3})
    deltas = compute_leaderboard_delta(None, new)

    assert len(deltas) == 4
    assert all(d.scope == "competition" for d in deltas)
    assert all(d.competition_id == "comp-1" for d in deltas)
    assert all(d.games_played_delta == 1 for d in deltas)
    assert _by_key(deltas)[("competition", "comp-1", "a")].total_points_delta == pytest.approx(32.3)


def test_casual_game_counts_on_global_scope():
    deltas = compute_leaderboard_delta(None, _version({p: 0 for p in PLAYERS}, ()))
    assert {(d.scope, d.competition_id) for d in deltas} == {("global", None)}
    assert all(d.games_played_delta == 1 for d in deltas)


def test_score_correction_moves_only_points():
    old = _version({"a": 32.3, "b": 11.2, "c": -22.2, "d": -41.3})
    new = _version({"a": 30.3, "b": 13.2, "c": -22.2, "d": -41.3})
    deltas = _by_key(compute_leaderboard_delta(old, new))

    assert set(deltas) == {("competition", "comp-1", "a"), ("competition", "comp-1", "b")}
    assert deltas[("competition", "comp-1", "a")].total_points_delta == pytest.approx(-2.0)
    assert deltas[("competition", "comp-1", "b")].total_points_delta == pytest.approx(2.0)
    assert all(d.games_played_delta == 0 for d in deltas.values())


def test_identical_versions_produce_no_deltas():
    version = _version({"a": 1.0, "b": 2.0, "c": -1.0, "d": -2.0})
    assert compute_leaderboard_delta(version, version) == []


def test_moving_competition_reverses_old_scope():
    points = {"a": 10.0, "b": 5.0, "c": -5.0, "d": -10.0}
    deltas = _by_key(
        compute_leaderboard_delta(_version(points, ("comp-1",)), _version(points, ("comp-2",)))
    )
    assert len(deltas) == 8
    assert deltas[("competition", "comp-1", "a")].games_played_delta == -1
    assert deltas[("competition", "comp-1", "a")].total_points_delta == pytest.approx(-10.0)
    assert deltas[("competition", "comp-2", "a")].games_played_delta == 1


def test_swapping_a_participant():
    old = _version({"a": 10.0, "b": 5.0, "c": -5.0, "d": -10.0})
    new = _version(
        {"a": 10.0, "b": 5.0, "c": -5.0, "e": -10.0},
        participants=["a", "b", "c", "e"],
    )
    deltas = _by_key(compute_leaderboard_delta(old, new))
    assert set(deltas) == {("competition", "comp-1", "d"), ("competition", "comp-1", "e")}
    assert deltas[("competition", "comp-1", "d")].games_played_delta == -1
    assert deltas[("competition", "comp-1", "e")].games_played_delta == 1


def test_delta_and_inverse_cancel_out():
    old = _version({"a": 32.3, "b": 11.2, "c": -22.2, "d": -41.3}, ("comp-1",))
    new = _version({"a": 12.0, "b": 8.5, "c": -2.2, "d": -38.3}, ())

    totals = defaultdict(lambda: [0.0, 0])
    for delta in compute_leaderboard_delta(old, new) + compute_leaderboard_delta(new, old):
        key = (delta.scope, delta.competition_id, delta.user_id)
        totals[key][0] += delta.total_points_delta
        totals[key][1] += delta.games_played_delta

    for points, games in totals.values():
        assert points == pytest.approx(0)
        assert games == 0
