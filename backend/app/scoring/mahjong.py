"""Riichi mahjong table-score to ranking-point transform."""
import math
from typing import Dict, List

from ..schemas import RuleSet


def apply_rounding(score: int, rounding: str) -> int:
    if rounding == "nearest_100":
        # Half-up, so 12350 -> 12400 and -150 -> -100.
        return int(math.floor(score / 100 + 0.5)) * 100
    return score


def round_points(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def compute_game_outcome(
    participants: List[str], final_scores: Dict[str, int], rules: RuleSet
) -> Dict:
    """Turn final table scores into ranks and point totals.

    Callers must have validated that every participant has exactly one score
    and that the scores sum to ``rules.scoreSum``.

    Players with equal rounded scores share the best rank of their group and
    split the uma of every position the group occupies. A group tied for
    first also splits the oka evenly.
    """

    normalized = sorted(
        (
            (user_id, apply_rounding(final_scores[user_id], rules.rounding))
            for user_id in participants
        ),
        key=lambda entry: (-entry[1], entry[0]),
    )

    ranks: Dict[str, int] = {}
    total_points: Dict[str, float] = {}

    cursor = 0
    while cursor < len(normalized):
        score = normalized[cursor][1]
        size = 1
        while cursor + size < len(normalized) and normalized[cursor + size][1] == score:
            size += 1

        group = normalized[cursor : cursor + size]
        start_position = cursor + 1
        average_uma = sum(rules.uma[cursor : cursor + size]) / size
        oka_share = rules.oka / size if start_position == 1 and rules.oka != 0 else 0

        for user_id, rounded in group:
            raw = (rounded - rules.returnPoints) / 1000
            ranks[user_id] = start_position
            total_points[user_id] = round_points(raw + average_uma + oka_share)

        cursor += size

    return {"ranks": ranks, "totalPoints": total_points}
