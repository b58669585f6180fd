"""Unanimous accept/reject consensus over a proposal's required voters.

Stored validation records have taken two shapes over time: a full
``userApprovals`` map keyed by voter, or only ``approvedBy``/``rejectedBy``
id lists. :func:`resolve` accepts either (or a mix) and returns one canonical
:class:`ValidationView`; nothing else in the codebase should inspect the raw
shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping

from ..exceptions import FailedPrecondition, PermissionDenied

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

ApprovalStatus = Literal["pending", "approved", "rejected"]
Decision = Literal["approve", "reject"]

_STATUSES = {PENDING, APPROVED, REJECTED}


@dataclass(frozen=True)
class ValidationView:
    required_user_ids: tuple[str, ...]
    user_approvals: Mapping[str, ApprovalStatus]
    approved_by: tuple[str, ...]
    rejected_by: tuple[str, ...]
    pending_user_ids: tuple[str, ...]
    unanimity_reached: bool
    has_rejection: bool

    def to_record(self) -> dict[str, Any]:
        """Serializable write model stored on the proposal row."""

        return {
            "requiredUserIds": list(self.required_user_ids),
            "userApprovals": dict(self.user_approvals),
            "approvedBy": list(self.approved_by),
            "rejectedBy": list(self.rejected_by),
        }

    def to_dict(self) -> dict[str, Any]:
        record = self.to_record()
        record.update(
            pendingUserIds=list(self.pending_user_ids),
            unanimityReached=self.unanimity_reached,
            hasRejection=self.has_rejection,
        )
        return record


def normalize_user_id(value: Any) -> str | None:
    """Trim ``value`` and reduce path-like ids (``users/abc``) to the bare id."""

    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if "/" not in trimmed:
        return trimmed
    parts = [part for part in trimmed.split("/") if part]
    return parts[-1] if parts else None


def _unique_user_ids(values: Any) -> list[str]:
    if not isinstance(values, (list, tuple)):
        return []
    seen: dict[str, None] = {}
    for value in values:
        normalized = normalize_user_id(value)
        if normalized:
            seen.setdefault(normalized, None)
    return list(seen)


def _to_status(value: Any) -> ApprovalStatus | None:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _STATUSES:
            return normalized  # type: ignore[return-value]
        return None
    if isinstance(value, Mapping) and "status" in value:
        return _to_status(value.get("status"))
    return None


def _to_user_approvals(raw_map: Any) -> dict[str, ApprovalStatus]:
    if not isinstance(raw_map, Mapping):
        return {}
    parsed: dict[str, ApprovalStatus] = {}
    for raw_user_id, raw_status in raw_map.items():
        user_id = normalize_user_id(raw_user_id)
        status = _to_status(raw_status)
        if user_id and status:
            parsed[user_id] = status
    return parsed


def _build_view(
    required: list[str], approvals: dict[str, ApprovalStatus]
) -> ValidationView:
    approved_by = tuple(uid for uid in required if approvals[uid] == APPROVED)
    rejected_by = tuple(uid for uid in required if approvals[uid] == REJECTED)
    pending = tuple(uid for uid in required if approvals[uid] == PENDING)
    return ValidationView(
        required_user_ids=tuple(required),
        user_approvals={uid: approvals[uid] for uid in required},
        approved_by=approved_by,
        rejected_by=rejected_by,
        pending_user_ids=pending,
        unanimity_reached=bool(required) and not rejected_by and not pending,
        has_rejection=bool(rejected_by),
    )


def create_pending(required_user_ids: Iterable[Any]) -> ValidationView:
    required = _unique_user_ids(list(required_user_ids))
    return _build_view(required, {uid: PENDING for uid in required})


def create_approved(required_user_ids: Iterable[Any]) -> ValidationView:
    """Record used when a competition skips validation: every voter approved."""

    required = _unique_user_ids(list(required_user_ids))
    return _build_view(required, {uid: APPROVED for uid in required})


def resolve(raw: Any) -> ValidationView:
    """Normalize a stored validation record into a :class:`ValidationView`.

    A per-voter map entry wins over the legacy id lists; a voter listed in both
    legacy lists counts as rejected. Voters with no recorded decision are
    pending. Entries for voters outside the required set are dropped.
    """

    if isinstance(raw, ValidationView):
        return raw

    record = raw if isinstance(raw, Mapping) else {}
    required = _unique_user_ids(record.get("requiredUserIds"))
    approved_set = set(_unique_user_ids(record.get("approvedBy")))
    rejected_set = set(_unique_user_ids(record.get("rejectedBy")))
    mapped = _to_user_approvals(record.get("userApprovals"))

    approvals: dict[str, ApprovalStatus] = {}
    for user_id in required:
        if user_id in mapped:
            approvals[user_id] = mapped[user_id]
        elif user_id in rejected_set:
            approvals[user_id] = REJECTED
        elif user_id in approved_set:
            approvals[user_id] = APPROVED
        else:
            approvals[user_id] = PENDING

    return _build_view(required, approvals)


def apply_decision(raw: Any, voter_id: Any, decision: Decision) -> ValidationView:
    """Record ``voter_id``'s decision and return the updated view.

    Repeating the voter's current decision is a no-op. Switching from
    approved to rejected (or back) is refused.
    """

    user_id = normalize_user_id(voter_id)
    current = resolve(raw)
    if not user_id or user_id not in current.required_user_ids:
        raise PermissionDenied("You are not allowed to validate this proposal.")

    status = current.user_approvals.get(user_id, PENDING)
    if decision == "approve" and status == REJECTED:
        raise FailedPrecondition("You already rejected this proposal.")
    if decision == "reject" and status == APPROVED:
        raise FailedPrecondition("You already approved this proposal.")

    approvals = dict(current.user_approvals)
    approvals[user_id] = APPROVED if decision == "approve" else REJECTED
    return _build_view(list(current.required_user_ids), approvals)
