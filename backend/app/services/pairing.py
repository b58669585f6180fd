"""Table assignment algorithms for four-player tournament rounds.

Two strategies are supported:

``performance_swiss``
    Builds one round at a time from the current standings and the history of
    who already sat together. New encounters are strongly preferred; among
    equally fresh candidates, players close in the standings are grouped.

``precomputed_min_repeats``
    Builds every round up front. Several seeded randomized attempts are run
    and the schedule with the best encounter distribution is kept. Seeds are
    derived from the sorted roster so identical input always yields the
    identical schedule.
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

PERFORMANCE_SWISS = "performance_swiss"
PRECOMPUTED_MIN_REPEATS = "precomputed_min_repeats"
PAIRING_ALGORITHMS = (PERFORMANCE_SWISS, PRECOMPUTED_MIN_REPEATS)

TABLE_SIZE = 4
DEFAULT_SCHEDULE_ATTEMPTS = 120

_REPEAT_WEIGHT = 100
_RANK_SPREAD_WEIGHT = 1
_ATTEMPT_SEED_STRIDE = 7919

EncounterCounts = dict[tuple[str, str], int]


@dataclass
class TableAssignment:
    table_index: int
    player_ids: list[str]


def normalize_pairing_algorithm(value: str | None) -> str:
    """Normalize and validate a pairing algorithm identifier."""

    candidate = (value or PERFORMANCE_SWISS).strip().lower()
    if candidate not in PAIRING_ALGORITHMS:
        raise ValueError(f"unsupported pairing algorithm: {value!r}")
    return candidate


def pair_key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a < b else (b, a)


def add_table_encounters(counts: EncounterCounts, player_ids: Sequence[str]) -> None:
    for i, first in enumerate(player_ids):
        for second in player_ids[i + 1 :]:
            key = pair_key(first, second)
            counts[key] = counts.get(key, 0) + 1


def build_encounter_counts(
    rounds: Iterable[Iterable[Sequence[str]]],
) -> EncounterCounts:
    """Count how often each pair of players has shared a table.

    ``rounds`` yields, per round, the player lists of its tables.
    """

    counts: EncounterCounts = {}
    for tables in rounds:
        for player_ids in tables:
            add_table_encounters(counts, list(player_ids))
    return counts


def stable_seed(*parts: object) -> int:
    """Derive a 64-bit seed from ``parts`` that is stable across processes."""

    digest = hashlib.sha256("::".join(str(part) for part in parts).encode("utf-8"))
    return int.from_bytes(digest.digest()[:8], "big")


def _require_valid_roster(player_ids: Sequence[str]) -> None:
    if len(player_ids) < TABLE_SIZE or len(player_ids) % TABLE_SIZE != 0:
        raise ValueError("Tournament participant count must be a multiple of 4.")
    if len(set(player_ids)) != len(player_ids):
        raise ValueError("Tournament participants must be unique.")


def generate_incremental_pairings(
    player_ids: Sequence[str],
    standings_points: Mapping[str, float],
    encounter_counts: Mapping[tuple[str, str], int],
    *,
    seed: int | None = None,
) -> list[TableAssignment]:
    """Build the tables for the next round of a ``performance_swiss`` event.

    Players missing from ``standings_points`` count as zero. Tables are
    seeded in a shuffled order; each remaining seat goes to the unplaced
    player with the lowest
    ``100 * prior encounters with the seated players + rank distance to them``.
    """

    _require_valid_roster(player_ids)

    ranked = sorted(
        player_ids, key=lambda pid: (-(standings_points.get(pid) or 0), pid)
    )
    rank_index = {pid: index for index, pid in enumerate(ranked)}

    rng = random.Random(stable_seed(*sorted(player_ids)) if seed is None else seed)
    seed_order = list(ranked)
    rng.shuffle(seed_order)

    available = list(ranked)
    tables: list[TableAssignment] = []

    for seed_player in seed_order:
        if seed_player not in available:
            continue
        available.remove(seed_player)
        seated = [seed_player]

        while len(seated) < TABLE_SIZE:
            best_index = 0
            best_score: float | None = None
            for index, candidate in enumerate(available):
                repeat_penalty = 0
                spread_penalty = 0
                for player in seated:
                    repeat_penalty += encounter_counts.get(pair_key(candidate, player), 0)
                    spread_penalty += abs(rank_index[candidate] - rank_index[player])
                score = (
                    repeat_penalty * _REPEAT_WEIGHT
                    + spread_penalty * _RANK_SPREAD_WEIGHT
                )
                if best_score is None or score < best_score:
                    best_score = score
                    best_index = index
            seated.append(available.pop(best_index))

        tables.append(TableAssignment(table_index=len(tables), player_ids=seated))

    return tables


def score_encounter_distribution(counts: Mapping[tuple[str, str], int]) -> tuple[int, int, int]:
    """Return ``(worst pair count, repeats beyond the first, sum of squares)``.

    Lower is better, compared lexicographically.
    """

    worst = 0
    excess = 0
    squares = 0
    for count in counts.values():
        worst = max(worst, count)
        if count > 1:
            excess += count - 1
        squares += count * count
    return worst, excess, squares


def _min_repeat_round(
    player_ids: Sequence[str], counts: EncounterCounts, rng: random.Random
) -> list[TableAssignment]:
    available = list(player_ids)
    rng.shuffle(available)
    tables: list[TableAssignment] = []

    while available:
        seated = [available.pop(0)]
        while len(seated) < TABLE_SIZE:
            best_index = 0
            best_score = float("inf")
            for index, candidate in enumerate(available):
                repeat_penalty = 0
                worst_pair = 0
                for player in seated:
                    count = counts.get(pair_key(candidate, player), 0)
                    repeat_penalty += count
                    worst_pair = max(worst_pair, count)
                # Sub-unit noise breaks ties differently across attempts.
                score = worst_pair * 1000 + repeat_penalty * 100 + rng.random() * 0.001
                if score < best_score:
                    best_score = score
                    best_index = index
            seated.append(available.pop(best_index))
        tables.append(TableAssignment(table_index=len(tables), player_ids=seated))

    return tables


def generate_precomputed_schedule(
    player_ids: Sequence[str],
    total_rounds: int,
    *,
    attempts: int = DEFAULT_SCHEDULE_ATTEMPTS,
) -> list[list[TableAssignment]]:
    """Build all ``total_rounds`` rounds minimizing repeat encounters."""

    _require_valid_roster(player_ids)
    if total_rounds <= 0:
        raise ValueError("Tournament total rounds must be greater than zero.")

    roster = sorted(player_ids)
    base_seed = stable_seed("|".join(roster), total_rounds)

    best_schedule: list[list[TableAssignment]] | None = None
    best_score: tuple[int, int, int] | None = None

    for attempt in range(max(1, attempts)):
        rng = random.Random(base_seed + attempt * _ATTEMPT_SEED_STRIDE)
        counts: EncounterCounts = {}
        schedule: list[list[TableAssignment]] = []
        for _ in range(total_rounds):
            tables = _min_repeat_round(roster, counts, rng)
            schedule.append(tables)
            for table in tables:
                add_table_encounters(counts, table.player_ids)

        score = score_encounter_distribution(counts)
        if best_score is None or score < best_score:
            best_schedule = schedule
            best_score = score

    assert best_schedule is not None
    return best_schedule
