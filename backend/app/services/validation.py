from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import FailedPrecondition, InvalidArgument
from ..schemas import RuleSet


def normalize_doc_id(value: Any, collection: str) -> str:
    """Return the bare id for ``value``.

    Accepts plain ids as well as path-like references such as
    ``"proposals/abc"`` or ``"/clubs/c1/competitions/x"``; the last path
    segment is the id.
    """

    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{collection} id is required.")

    trimmed = value.strip()
    if "/" not in trimmed:
        return trimmed

    parts = [part for part in trimmed.split("/") if part]
    if not parts:
        raise InvalidArgument(f"{collection} id is required.")
    return parts[-1]


def assert_participants_unique(participants: Sequence[str]) -> None:
    if len(set(participants)) != len(participants):
        raise InvalidArgument("Participants must be unique.")


def assert_score_map_matches_participants(
    participants: Sequence[str],
    final_scores: Mapping[str, Any],
    score_sum: int,
) -> None:
    """Validate a final-score map against the participants and the RuleSet.

    Rules:
    - exactly one score per participant, and no extra keys
    - scores are integers (booleans are rejected)
    - the scores add up to ``score_sum``
    """

    if len(final_scores) != len(participants):
        raise InvalidArgument("Scores must match participants exactly.")

    for participant in participants:
        if participant not in final_scores:
            raise InvalidArgument(f"Missing score for participant {participant}.")

    total = 0
    for user_id, raw in final_scores.items():
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise InvalidArgument(f"Score for {user_id} must be an integer.")
        total += raw

    if total != score_sum:
        raise InvalidArgument(f"Score sum must be {score_sum}.")


def club_rules(raw: Optional[Mapping[str, Any]]) -> RuleSet:
    """Return the club default RuleSet, falling back to built-in defaults."""

    if not raw:
        return RuleSet()
    try:
        return RuleSet.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise FailedPrecondition(f"Club rules are misconfigured: {exc}") from exc


def resolve_rules(
    club_default_rules: Optional[Mapping[str, Any]],
    rules_mode: Optional[str] = None,
    override_rules: Optional[Mapping[str, Any]] = None,
) -> RuleSet:
    """Resolve the effective RuleSet for a game.

    In ``override`` mode every field present in ``override_rules`` replaces
    the club value; everything else is inherited.
    """

    base = club_rules(club_default_rules)
    if rules_mode != "override" or not override_rules:
        return base

    listed: Dict[str, Any] = {
        key: value for key, value in override_rules.items() if value is not None
    }
    try:
        return RuleSet.model_validate({**base.model_dump(), **listed})
    except PydanticValidationError as exc:
        raise FailedPrecondition(f"Competition rules are misconfigured: {exc}") from exc


def union_preserving_order(*groups: Sequence[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for group in groups:
        for item in group:
            if item:
                seen.setdefault(item, None)
    return list(seen)
