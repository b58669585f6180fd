from collections import Counter

import pytest

from app.services.pairing import (
    PERFORMANCE_SWISS,
    PRECOMPUTED_MIN_REPEATS,
    build_encounter_counts,
    generate_incremental_pairings,
    generate_precomputed_schedule,
    normalize_pairing_algorithm,
    score_encounter_distribution,
    stable_seed,
)


def _players(count):
    return [f"p{index:02d}" for index in range(count)]


def _assert_valid_round(tables, players):
    assert len(tables) == len(players) // 4
    assert [t.table_index for t in tables] == list(range(len(tables)))
    seated = Counter(pid for table in tables for pid in table.player_ids)
    assert all(len(table.player_ids) == 4 for table in tables)
    assert seated == Counter(players)


@pytest.mark.parametrize("count", [4, 8, 12, 20])
def test_incremental_round_seats_everyone_once(count):
    players = _players(count)
    tables = generate_incremental_pairings(players, {}, {}, seed=stable_seed("t", count))
    _assert_valid_round(tables, players)


def test_incremental_round_is_deterministic_for_a_seed():
    players = _players(12)
    standings = {pid: float(index) for index, pid in enumerate(players)}
    first = generate_incremental_pairings(players, standings, {}, seed=42)
    second = generate_incremental_pairings(players, standings, {}, seed=42)
    assert [t.player_ids for t in first] == [t.player_ids for t in second]


def test_incremental_round_breaks_up_previous_tables():
    players = _players(8)
    previous = [players[:4], players[4:]]
    counts = build_encounter_counts([previous])

    tables = generate_incremental_pairings(players, {}, counts, seed=7)

    _assert_valid_round(tables, players)
    earlier = [set(group) for group in previous]
    for table in tables:
        assert set(table.player_ids) not in earlier


def test_precomputed_schedule_for_eight_players_two_rounds():
    players = _players(8)
    schedule = generate_precomputed_schedule(players, 2, attempts=40)

    assert len(schedule) == 2
    for tables in schedule:
        _assert_valid_round(tables, players)

    counts = build_encounter_counts([[t.player_ids for t in tables] for tables in schedule])
    worst, excess, _ = score_encounter_distribution(counts)
    assert worst <= 2
    assert excess <= 4


def test_precomputed_schedule_is_deterministic():
    players = _players(16)
    first = generate_precomputed_schedule(players, 3, attempts=10)
    second = generate_precomputed_schedule(list(reversed(players)), 3, attempts=10)
    assert [[t.player_ids for t in r] for r in first] == [
        [t.player_ids for t in r] for r in second
    ]


def test_precomputed_schedule_avoids_repeats_when_possible():
    players = _players(16)
    schedule = generate_precomputed_schedule(players, 2, attempts=60)
    counts = build_encounter_counts([[t.player_ids for t in tables] for tables in schedule])
    worst, _, _ = score_encounter_distribution(counts)
    assert worst == 1


@pytest.mark.parametrize(
    "players",
    [
        ["a", "b", "c"],
        ["a", "b", "c", "d", "e", "f"],
        ["a", "a", "b", "c"],
    ],
)
def test_invalid_roster_is_refused(players):
    with pytest.raises(ValueError):
        generate_incremental_pairings(players, {}, {})
    with pytest.raises(ValueError):
        generate_precomputed_schedule(players, 2)


def test_precomputed_schedule_needs_rounds():
    with pytest.raises(ValueError):
        generate_precomputed_schedule(_players(4), 0)


def test_normalize_pairing_algorithm():
    assert normalize_pairing_algorithm(None) == PERFORMANCE_SWISS
    assert normalize_pairing_algorithm(" Precomputed_Min_Repeats ") == PRECOMPUTED_MIN_REPEATS
    with pytest.raises(ValueError):
        normalize_pairing_algorithm("round_robin")


def test_encounter_distribution_score():
    counts = {("a", "b"): 3, ("a", "c"): 1, ("b", "c"): 2}
    assert score_encounter_distribution(counts) == (3, 3, 14)
