from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..models import TournamentRound, TournamentTable
from ..schemas import (
    ProposalSubmitOut,
    RoundCreateOut,
    RoundOut,
    TableAssignmentOut,
    TableResultIn,
    TournamentTableOut,
)
from ..services import clubs as club_service
from ..services import proposals as proposal_service
from ..services import tournaments as tournament_service
from ..services.validation import normalize_doc_id
from .auth import get_current_user_id, limiter, submission_rate_limit
from .games import to_submit_out

router = APIRouter(
    prefix="/clubs/{club_id}/competitions/{competition_id}/rounds",
    tags=["tournaments"],
    responses={404: {"model": ProblemDetail}},
)


def to_round_out(tournament_round: TournamentRound, tables: list[TournamentTable]) -> RoundOut:
    return RoundOut(
        id=tournament_round.id,
        competitionId=tournament_round.competition_id,
        roundNumber=tournament_round.round_number,
        status=tournament_round.status,
        tables={
            str(table.table_index): TournamentTableOut(
                tableIndex=table.table_index,
                playerIds=list(table.player_ids or []),
                status=table.status,
                proposalId=table.proposal_id,
                gameId=table.game_id,
            )
            for table in sorted(tables, key=lambda t: t.table_index)
        },
    )


@router.post("", response_model=RoundCreateOut, status_code=status.HTTP_201_CREATED)
async def create_round(
    club_id: str,
    competition_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> RoundCreateOut:
    created = await tournament_service.create_next_round(
        session, club_id, competition_id, user_id
    )
    return RoundCreateOut(
        roundId=created.round_id,
        roundNumber=created.round_number,
        tables=[
            TableAssignmentOut(tableIndex=t.table_index, playerIds=list(t.player_ids))
            for t in created.tables
        ],
    )


@router.get("", response_model=list[RoundOut])
async def list_rounds(
    club_id: str,
    competition_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> list[RoundOut]:
    club_id = normalize_doc_id(club_id, "clubs")
    await club_service.require_member(session, club_id, user_id)
    competition = await club_service.get_competition(
        session, club_id, normalize_doc_id(competition_id, "competitions")
    )
    rounds = await tournament_service.list_rounds(session, competition.id)
    return [to_round_out(r, tables) for r, tables in rounds]


@router.post(
    "/{round_id}/tables/{table_index}/result",
    response_model=ProposalSubmitOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(submission_rate_limit)
async def submit_table_result(
    request: Request,
    club_id: str,
    competition_id: str,
    round_id: str,
    body: TableResultIn,
    table_index: int = Path(..., ge=0),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ProposalSubmitOut:
    result = await proposal_service.submit_tournament_table_result(
        session,
        club_id,
        competition_id,
        round_id,
        table_index,
        body,
        user_id,
    )
    return to_submit_out(result)
