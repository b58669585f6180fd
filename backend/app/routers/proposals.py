from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import NotFound, ProblemDetail
from ..models import Proposal, ValidationRequest
from ..schemas import (
    ComputedResultOut,
    ProposalDecisionOut,
    ProposalOut,
    RejectProposalIn,
    ValidationRequestOut,
    ValidationViewOut,
)
from ..services import approval
from ..services import proposals as proposal_service
from ..services.clubs import require_member
from ..services.validation import normalize_doc_id
from ..time_utils import coerce_utc
from .auth import get_current_user_id

router = APIRouter(tags=["proposals"], responses={404: {"model": ProblemDetail}})


def to_decision_out(result: proposal_service.DecisionResult) -> ProposalDecisionOut:
    return ProposalDecisionOut(
        proposalStatus=result.proposal_status,
        gameStatus=result.game_status,
        versionId=result.version_id,
    )


def to_proposal_out(proposal: Proposal) -> ProposalOut:
    view = approval.resolve(proposal.validation)
    return ProposalOut(
        id=proposal.id,
        clubId=proposal.club_id,
        gameId=proposal.game_id,
        type=proposal.type,
        status=proposal.status,
        fromVersionId=proposal.from_version_id,
        proposedVersion=dict(proposal.proposed_version),
        rulesSnapshot=dict(proposal.rules_snapshot),
        computedPreview=ComputedResultOut(**proposal.computed_preview),
        validation=ValidationViewOut(**view.to_dict()),
        rejectionReason=proposal.rejection_reason,
        createdBy=proposal.created_by,
        createdAt=coerce_utc(proposal.created_at),
    )


@router.get("/proposals/{proposal_id}", response_model=ProposalOut)
async def get_proposal(
    proposal_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ProposalOut:
    proposal = await session.get(Proposal, normalize_doc_id(proposal_id, "proposals"))
    if proposal is None:
        raise NotFound(f"Proposal {proposal_id} not found.")
    await require_member(session, proposal.club_id, user_id)
    return to_proposal_out(proposal)


@router.post("/proposals/{proposal_id}/approve", response_model=ProposalDecisionOut)
async def approve_proposal(
    proposal_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ProposalDecisionOut:
    result = await proposal_service.approve_proposal(session, proposal_id, user_id)
    return to_decision_out(result)


@router.post("/proposals/{proposal_id}/reject", response_model=ProposalDecisionOut)
async def reject_proposal(
    proposal_id: str,
    body: Optional[RejectProposalIn] = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ProposalDecisionOut:
    result = await proposal_service.reject_proposal(
        session, proposal_id, user_id, reason=body.reason if body else None
    )
    return to_decision_out(result)


# GET /api/v0/inbox?status=pending
@router.get("/inbox", response_model=list[ValidationRequestOut])
async def list_inbox(
    status: Optional[Literal["pending", "approved", "rejected"]] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> list[ValidationRequestOut]:
    stmt = select(ValidationRequest).where(ValidationRequest.user_id == user_id)
    if status:
        stmt = stmt.where(ValidationRequest.status == status)
    stmt = stmt.order_by(
        ValidationRequest.updated_at.desc(), ValidationRequest.id
    ).limit(limit)
    rows = (await session.execute(stmt)).scalars().all()
    return [
        ValidationRequestOut(
            id=row.id,
            clubId=row.club_id,
            type=row.type,
            proposalId=row.proposal_id,
            gameId=row.game_id,
            status=row.status,
            updatedAt=coerce_utc(row.updated_at),
        )
        for row in rows
    ]
