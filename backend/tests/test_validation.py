import pytest

from app.exceptions import FailedPrecondition, InvalidArgument
from app.services.validation import (
    assert_participants_unique,
    assert_score_map_matches_participants,
    club_rules,
    normalize_doc_id,
    resolve_rules,
    union_preserving_order,
)

PLAYERS = ["a", "b", "c", "d"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("abc", "abc"),
        ("  abc ", "abc"),
        ("proposals/abc", "abc"),
        ("/clubs/c1/competitions/x/", "x"),
    ],
)
def test_normalize_doc_id(raw, expected):
    assert normalize_doc_id(raw, "proposals") == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "///", 12])
def test_normalize_doc_id_rejects_empty(raw):
    with pytest.raises(InvalidArgument):
        normalize_doc_id(raw, "proposals")


def test_participants_must_be_unique():
    assert_participants_unique(PLAYERS)
    with pytest.raises(InvalidArgument, match="unique"):
        assert_participants_unique(["a", "b", "a", "d"])


def test_accepts_matching_score_map():
    assert_score_map_matches_participants(
        PLAYERS, {"a": 42300, "b": 31200, "c": 17800, "d": 8700}, 100000
    )


@pytest.mark.parametrize(
    "scores, msg",
    [
        ({"a": 50000, "b": 25000, "c": 25000}, "match participants"),
        ({"a": 25000, "b": 25000, "c": 25000, "e": 25000}, "missing score"),
        ({"a": 25000, "b": 25000, "c": 25000, "d": "25000"}, "integer"),
        ({"a": 25000, "b": 25000, "c": 25000, "d": 25000.0}, "integer"),
        ({"a": 99999, "b": True, "c": 0, "d": 0}, "integer"),
        ({"a": 25000, "b": 25000, "c": 25000, "d": 24900}, "sum must be 100000"),
        (
            {"a": 25000, "b": 25000, "c": 25000, "d": 25000, "e": 0},
            "match participants",
        ),
    ],
    ids=[
        "missing-key",
        "foreign-key",
        "string",
        "float",
        "bool",
        "bad-sum",
        "extra-key",
    ],
)
def test_rejects_invalid_score_maps(scores, msg):
    with pytest.raises(InvalidArgument) as exc:
        assert_score_map_matches_participants(PLAYERS, scores, 100000)
    assert msg.lower() in str(exc.value).lower()


def test_club_rules_default_when_unset():
    rules = club_rules(None)
    assert rules.uma == [20, 10, -10, -20]
    assert rules.returnPoints == 30000
    assert rules.rounding == "nearest_100"


def test_club_rules_misconfigured():
    with pytest.raises(FailedPrecondition):
        club_rules({"uma": [1, 2]})


def test_override_replaces_listed_fields_only():
    club = {"returnPoints": 25000, "oka": 0, "uma": [15, 5, -5, -15]}
    rules = resolve_rules(club, "override", {"uma": [30, 10, -10, -30], "oka": None})
    assert rules.uma == [30, 10, -10, -30]
    assert rules.returnPoints == 25000
    assert rules.oka == 0


def test_inherit_ignores_override_rules():
    rules = resolve_rules({"returnPoints": 25000}, "inherit", {"returnPoints": 40000})
    assert rules.returnPoints == 25000


def test_union_preserving_order():
    assert union_preserving_order(["a", "b"], ["c", "a", ""], ["d"]) == ["a", "b", "c", "d"]
