from typing import Any, Optional, Sequence

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..models import ClubMember, CompetitionLeaderboardEntry, GlobalLeaderboardEntry
from ..schemas import StandingOut, StandingsOut
from ..scoring.mahjong import round_points
from ..services import clubs as club_service
from ..services.validation import normalize_doc_id
from .auth import get_current_user_id

# Resource-only prefix; no /api or /api/v0 here
router = APIRouter(prefix="/clubs/{club_id}", tags=["leaderboards"])


def _rank_rows(rows: Sequence[Any], limit: int, offset: int) -> list[StandingOut]:
    """Order by points, then games played, then user id; equal points share a rank."""

    ordered = sorted(
        rows,
        key=lambda row: (-(row.total_points or 0), -(row.games_played or 0), row.user_id),
    )
    standings: list[StandingOut] = []
    previous_points: Optional[float] = None
    rank = 0
    for index, row in enumerate(ordered):
        points = round_points(row.total_points or 0)
        if points != previous_points:
            rank = index + 1
            previous_points = points
        standings.append(
            StandingOut(
                rank=rank,
                userId=row.user_id,
                displayName=row.display_name_cache,
                totalPoints=points,
                gamesPlayed=row.games_played or 0,
            )
        )
    return standings[offset : offset + limit]


# GET /api/v0/clubs/{club_id}/leaderboards/global
@router.get("/leaderboards/global", response_model=StandingsOut)
async def global_leaderboard(
    club_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> StandingsOut:
    club_id = normalize_doc_id(club_id, "clubs")
    await club_service.get_club(session, club_id)
    await club_service.require_member(session, club_id, user_id)

    stmt = (
        select(
            GlobalLeaderboardEntry.user_id,
            GlobalLeaderboardEntry.total_points,
            GlobalLeaderboardEntry.games_played,
            ClubMember.display_name_cache,
        )
        .outerjoin(
            ClubMember,
            and_(
                ClubMember.club_id == GlobalLeaderboardEntry.club_id,
                ClubMember.user_id == GlobalLeaderboardEntry.user_id,
            ),
        )
        .where(
            GlobalLeaderboardEntry.club_id == club_id,
            GlobalLeaderboardEntry.games_played > 0,
        )
    )
    rows = (await session.execute(stmt)).all()
    return StandingsOut(
        clubId=club_id,
        competitionId=None,
        scope="global",
        standings=_rank_rows(rows, limit, offset),
    )


# GET /api/v0/clubs/{club_id}/competitions/{competition_id}/leaderboard
@router.get("/competitions/{competition_id}/leaderboard", response_model=StandingsOut)
async def competition_leaderboard(
    club_id: str,
    competition_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> StandingsOut:
    club_id = normalize_doc_id(club_id, "clubs")
    competition_id = normalize_doc_id(competition_id, "competitions")
    await club_service.require_member(session, club_id, user_id)
    await club_service.get_competition(session, club_id, competition_id)

    stmt = (
        select(
            CompetitionLeaderboardEntry.user_id,
            CompetitionLeaderboardEntry.total_points,
            CompetitionLeaderboardEntry.games_played,
            ClubMember.display_name_cache,
        )
        .outerjoin(
            ClubMember,
            and_(
                ClubMember.club_id == CompetitionLeaderboardEntry.club_id,
                ClubMember.user_id == CompetitionLeaderboardEntry.user_id,
            ),
        )
        .where(
            CompetitionLeaderboardEntry.club_id == club_id,
            CompetitionLeaderboardEntry.competition_id == competition_id,
            CompetitionLeaderboardEntry.games_played > 0,
        )
    )
    rows = (await session.execute(stmt)).all()
    return StandingsOut(
        clubId=club_id,
        competitionId=competition_id,
        scope="competition",
        standings=_rank_rows(rows, limit, offset),
    )
