from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import NotFound, ProblemDetail
from ..models import Game, GameVersion
from ..schemas import (
    ComputedResultOut,
    GameCreateProposalIn,
    GameEditProposalIn,
    GameOut,
    ProposalSubmitOut,
    VersionOut,
)
from ..services import proposals as proposal_service
from ..services.clubs import require_member
from ..services.validation import normalize_doc_id
from ..time_utils import coerce_utc
from .auth import get_current_user_id, limiter, submission_rate_limit

router = APIRouter(
    prefix="/games",
    tags=["games"],
    responses={404: {"model": ProblemDetail}},
)


def to_submit_out(result: proposal_service.SubmitResult) -> ProposalSubmitOut:
    return ProposalSubmitOut(
        gameId=result.game_id,
        proposalId=result.proposal_id,
        status=result.status,
        resubmitted=result.resubmitted,
    )


def to_version_out(version: GameVersion) -> VersionOut:
    return VersionOut(
        id=version.id,
        gameId=version.game_id,
        versionNumber=version.version_number,
        participants=list(version.participants),
        finalScores=dict(version.final_scores),
        competitionIds=list(version.competition_ids or []),
        rulesSnapshot=dict(version.rules_snapshot),
        computed=ComputedResultOut(**version.computed),
        createdBy=version.created_by,
        createdAt=coerce_utc(version.created_at),
    )


def to_game_out(game: Game, active_version: GameVersion | None) -> GameOut:
    return GameOut(
        id=game.id,
        clubId=game.club_id,
        status=game.status,
        participants=list(game.participants or []),
        competitionIds=list(game.competition_ids or []),
        activeVersionId=game.active_version_id,
        pendingProposalId=game.pending_proposal_id,
        pendingActionType=game.pending_action_type,
        tournamentRoundId=game.tournament_round_id,
        tournamentTableIndex=game.tournament_table_index,
        activeVersion=to_version_out(active_version) if active_version else None,
        createdAt=coerce_utc(game.created_at),
        updatedAt=coerce_utc(game.updated_at),
    )


async def _get_visible_game(session: AsyncSession, game_id: str, user_id: str) -> Game:
    game = await session.get(Game, normalize_doc_id(game_id, "games"))
    if game is None:
        raise NotFound(f"Game {game_id} not found.")
    await require_member(session, game.club_id, user_id)
    return game


@router.post("", response_model=ProposalSubmitOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(submission_rate_limit)
async def submit_game(
    request: Request,
    body: GameCreateProposalIn,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ProposalSubmitOut:
    result = await proposal_service.submit_game_create(session, body, user_id)
    return to_submit_out(result)


@router.post(
    "/{game_id}/edits",
    response_model=ProposalSubmitOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(submission_rate_limit)
async def submit_game_edit(
    request: Request,
    game_id: str,
    body: GameEditProposalIn,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ProposalSubmitOut:
    result = await proposal_service.submit_game_edit(session, game_id, body, user_id)
    return to_submit_out(result)


@router.get("/{game_id}", response_model=GameOut)
async def get_game(
    game_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> GameOut:
    game = await _get_visible_game(session, game_id, user_id)
    active_version = (
        await session.get(GameVersion, game.active_version_id)
        if game.active_version_id
        else None
    )
    return to_game_out(game, active_version)


@router.get("/{game_id}/versions", response_model=list[VersionOut])
async def list_game_versions(
    game_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> list[VersionOut]:
    game = await _get_visible_game(session, game_id, user_id)
    rows = (
        await session.execute(
            select(GameVersion)
            .where(GameVersion.game_id == game.id)
            .order_by(GameVersion.version_number)
        )
    ).scalars().all()
    return [to_version_out(version) for version in rows]
