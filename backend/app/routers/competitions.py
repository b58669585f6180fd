from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..models import Competition
from ..schemas import CompetitionCreate, CompetitionOut, TournamentStateOut
from ..services import clubs as club_service
from ..services.validation import normalize_doc_id
from .auth import get_current_user_id

router = APIRouter(
    prefix="/clubs/{club_id}/competitions",
    tags=["competitions"],
    responses={404: {"model": ProblemDetail}},
)


def to_competition_out(competition: Competition) -> CompetitionOut:
    return CompetitionOut(
        id=competition.id,
        clubId=competition.club_id,
        name=competition.name,
        type=competition.type,
        status=competition.status,
        rulesMode=competition.rules_mode,
        overrideRules=competition.override_rules,
        validationEnabled=bool(competition.validation_enabled),
        participantUserIds=list(competition.participant_user_ids or []),
        totalRounds=competition.total_rounds or 0,
        pairingAlgorithm=competition.pairing_algorithm,
        tournamentState=TournamentStateOut(
            activeRoundNumber=competition.active_round_number,
            lastCompletedRound=competition.last_completed_round or 0,
        ),
    )


@router.post("", response_model=CompetitionOut, status_code=status.HTTP_201_CREATED)
async def create_competition(
    club_id: str,
    body: CompetitionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CompetitionOut:
    competition = await club_service.create_competition(
        session, normalize_doc_id(club_id, "clubs"), body, user_id
    )
    return to_competition_out(competition)


@router.get("/{competition_id}", response_model=CompetitionOut)
async def get_competition(
    club_id: str,
    competition_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CompetitionOut:
    club_id = normalize_doc_id(club_id, "clubs")
    await club_service.require_member(session, club_id, user_id)
    competition = await club_service.get_competition(
        session, club_id, normalize_doc_id(competition_id, "competitions")
    )
    return to_competition_out(competition)
