# backend/app/routers/rulesets.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..schemas import RuleSet
from ..services import clubs as club_service
from ..services.validation import normalize_doc_id
from .auth import get_current_user_id

# Club default rules live under the club resource
router = APIRouter(prefix="/clubs/{club_id}/rules", tags=["rules"])


# GET /api/v0/clubs/{club_id}/rules
@router.get("", response_model=RuleSet)
async def get_club_rules(
    club_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> RuleSet:
    return await club_service.get_club_rules(
        session, normalize_doc_id(club_id, "clubs"), user_id
    )


@router.put("", response_model=RuleSet)
async def replace_club_rules(
    club_id: str,
    body: RuleSet,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> RuleSet:
    return await club_service.set_club_rules(
        session, normalize_doc_id(club_id, "clubs"), body, user_id
    )
