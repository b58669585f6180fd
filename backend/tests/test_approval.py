import pytest

from app.exceptions import FailedPrecondition, PermissionDenied
from app.services import approval

VOTERS = ["a", "b", "c", "d"]


def test_create_pending_tracks_every_voter():
    view = approval.create_pending(VOTERS + ["a", " "])
    assert view.required_user_ids == tuple(VOTERS)
    assert view.pending_user_ids == tuple(VOTERS)
    assert not view.unanimity_reached
    assert not view.has_rejection


def test_unanimity_reached_on_last_approval():
    record = approval.create_pending(VOTERS).to_record()
    for index, voter in enumerate(VOTERS):
        view = approval.apply_decision(record, voter, "approve")
        record = view.to_record()
        assert view.unanimity_reached is (index == len(VOTERS) - 1)
    assert view.approved_by == tuple(VOTERS)
    assert view.pending_user_ids == ()


def test_rejection_blocks_unanimity_permanently():
    record = approval.create_pending(VOTERS).to_record()
    record = approval.apply_decision(record, "a", "approve").to_record()
    record = approval.apply_decision(record, "b", "reject").to_record()
    for voter in ("c", "d"):
        view = approval.apply_decision(record, voter, "approve")
        record = view.to_record()
        assert view.has_rejection
        assert not view.unanimity_reached
    assert view.rejected_by == ("b",)


def test_repeat_approval_is_idempotent():
    record = approval.create_pending(VOTERS).to_record()
    first = approval.apply_decision(record, "a", "approve")
    second = approval.apply_decision(first.to_record(), "a", "approve")
    assert first == second


def test_switching_decision_is_refused():
    record = approval.apply_decision(
        approval.create_pending(VOTERS).to_record(), "a", "approve"
    ).to_record()
    with pytest.raises(FailedPrecondition):
        approval.apply_decision(record, "a", "reject")

    record = approval.apply_decision(record, "b", "reject").to_record()
    with pytest.raises(FailedPrecondition):
        approval.apply_decision(record, "b", "approve")


def test_outsider_cannot_vote():
    record = approval.create_pending(VOTERS).to_record()
    with pytest.raises(PermissionDenied):
        approval.apply_decision(record, "zed", "approve")
    with pytest.raises(PermissionDenied):
        approval.apply_decision(record, None, "approve")


def test_create_approved_is_unanimous():
    view = approval.create_approved(VOTERS)
    assert view.unanimity_reached
    assert view.approved_by == tuple(VOTERS)


def test_resolve_reads_id_lists():
    view = approval.resolve(
        {
            "requiredUserIds": VOTERS,
            "approvedBy": ["a", "b", "c"],
            "rejectedBy": [],
        }
    )
    assert view.user_approvals == {
        "a": "approved",
        "b": "approved",
        "c": "approved",
        "d": "pending",
    }
    assert view.pending_user_ids == ("d",)


def test_resolve_prefers_rejection_when_listed_twice():
    view = approval.resolve(
        {"requiredUserIds": ["a", "b"], "approvedBy": ["a"], "rejectedBy": ["a"]}
    )
    assert view.user_approvals["a"] == "rejected"
    assert view.has_rejection


def test_resolve_map_entry_wins_over_lists():
    view = approval.resolve(
        {
            "requiredUserIds": ["a", "b"],
            "userApprovals": {"a": {"status": "APPROVED"}, "b": "pending"},
            "rejectedBy": ["a"],
        }
    )
    assert view.user_approvals == {"a": "approved", "b": "pending"}
    assert not view.has_rejection


def test_resolve_normalizes_path_ids_and_drops_outsiders():
    view = approval.resolve(
        {
            "requiredUserIds": ["users/a", " b "],
            "userApprovals": {"/users/a": "approved", "x": "approved"},
        }
    )
    assert view.required_user_ids == ("a", "b")
    assert dict(view.user_approvals) == {"a": "approved", "b": "pending"}


@pytest.mark.parametrize("raw", [None, "garbage", {}, {"requiredUserIds": "a"}])
def test_resolve_tolerates_malformed_records(raw):
    view = approval.resolve(raw)
    assert view.required_user_ids == ()
    assert not view.unanimity_reached


def test_view_dict_includes_derived_fields():
    data = approval.create_pending(["a"]).to_dict()
    assert data["pendingUserIds"] == ["a"]
    assert data["unanimityReached"] is False
    assert data["hasRejection"] is False
