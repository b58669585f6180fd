from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..models import Club
from ..schemas import ClubCreate, ClubMemberOut, ClubMemberUpsert, ClubOut
from ..services import clubs as club_service
from ..services.validation import normalize_doc_id
from .auth import get_current_user_id

router = APIRouter(
    prefix="/clubs",
    tags=["clubs"],
    responses={404: {"model": ProblemDetail}},
)


def _to_club_out(club: Club) -> ClubOut:
    return ClubOut(id=club.id, name=club.name)


@router.post("", response_model=ClubOut, status_code=status.HTTP_201_CREATED)
async def create_club(
    body: ClubCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ClubOut:
    club = await club_service.create_club(session, body, user_id)
    return _to_club_out(club)


@router.put("/{club_id}/members/{member_id}", response_model=ClubMemberOut)
async def upsert_member(
    club_id: str,
    member_id: str,
    body: ClubMemberUpsert,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ClubMemberOut:
    member = await club_service.upsert_club_member(
        session,
        normalize_doc_id(club_id, "clubs"),
        normalize_doc_id(member_id, "users"),
        body.role,
        user_id,
    )
    return ClubMemberOut(userId=member.user_id, role=member.role)
