"""Club membership directory, club rules and competition setup."""

from __future__ import annotations

import logging
import uuid
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import atomic
from ..db_errors import is_unique_violation
from ..exceptions import AlreadyExists, InvalidArgument, NotFound, PermissionDenied
from ..models import Club, ClubMember, Competition, User
from ..schemas import ClubCreate, CompetitionCreate, RuleSet
from .pairing import normalize_pairing_algorithm
from .validation import club_rules

logger = logging.getLogger(__name__)

ADMIN = "admin"
MEMBER = "member"

async def get_club(session: AsyncSession, club_id: str) -> Club:
    club = await session.get(Club, club_id)
    if club is None:
        raise NotFound(f"Club {club_id} not found.")
    return club

async def get_membership(
    session: AsyncSession, club_id: str, user_id: str
) -> ClubMember | None:
    return await session.get(ClubMember, (club_id, user_id))

async def require_member(
    session: AsyncSession, club_id: str, user_id: str
) -> ClubMember:
    member = await get_membership(session, club_id, user_id)
    if member is None:
        raise PermissionDenied("You are not a member of this club.")
    return member

async def require_admin_member(
    session: AsyncSession, club_id: str, user_id: str
) -> ClubMember:
    member = await require_member(session, club_id, user_id)
    if member.role != ADMIN:
        raise PermissionDenied("Club admin role is required.")
    return member

async def missing_members(
    session: AsyncSession, club_id: str, user_ids: Sequence[str]
) -> list[str]:
    """Return the ids in ``user_ids`` that are not members of ``club_id``."""

    if not user_ids:
        return []
    rows = await session.execute(
        select(ClubMember.user_id).where(
            ClubMember.club_id == club_id,
            ClubMember.user_id.in_(list(user_ids)),
        )
    )
    present = set(rows.scalars().all())
    return [uid for uid in user_ids if uid not in present]

async def create_club(
    session: AsyncSession, body: ClubCreate, caller_id: str
) -> Club:
    """Create a club and make ``caller_id`` its first admin."""

    club = Club(
        id=body.id,
        name=body.name,
        default_rules=body.defaultRules.model_dump() if body.defaultRules else None,
    )
    try:
        async with atomic(session):
            session.add(club)
            await session.flush()
            user = await session.get(User, caller_id)
            session.add(
                ClubMember(
                    club_id=club.id,
                    user_id=caller_id,
                    role=ADMIN,
                    display_name_cache=user.display_name if user else None,
                )
            )
    except IntegrityError as exc:
        if is_unique_violation(exc):
            raise AlreadyExists("Club already exists.") from exc
        raise
    logger.info("Club %s created by %s", club.id, caller_id)
    return club

async def upsert_club_member(
    session: AsyncSession,
    club_id: str,
    user_id: str,
    role: str,
    caller_id: str,
) -> ClubMember:
    if role not in (ADMIN, MEMBER):
        raise InvalidArgument("role must be 'admin' or 'member'.")

    async with atomic(session):
        await get_club(session, club_id)
        await require_admin_member(session, club_id, caller_id)

        user = await session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")

        member = await get_membership(session, club_id, user_id)
        if member is None:
            member = ClubMember(club_id=club_id, user_id=user_id)
            session.add(member)
        member.role = role
        member.display_name_cache = user.display_name

    return member

async def get_club_rules(
    session: AsyncSession, club_id: str, caller_id: str
) -> RuleSet:
    club = await get_club(session, club_id)
    await require_member(session, club_id, caller_id)
    return club_rules(club.default_rules)

async def set_club_rules(
    session: AsyncSession, club_id: str, rules: RuleSet, caller_id: str
) -> RuleSet:
    async with atomic(session):
        club = await get_club(session, club_id)
        await require_admin_member(session, club_id, caller_id)
        club.default_rules = rules.model_dump()
    return rules

async def create_competition(
    session: AsyncSession,
    club_id: str,
    body: CompetitionCreate,
    caller_id: str,
) -> Competition:
    """Create a championship or tournament inside ``club_id``.

    Tournament participants must already be club members; the pairing
    algorithm is fixed for the competition's lifetime.
    """

    participants: list[str] = []
    total_rounds = 0
    pairing_algorithm = None
    if body.tournamentConfig is not None:
        try:
            pairing_algorithm = normalize_pairing_algorithm(
                body.tournamentConfig.pairingAlgorithm
            )
        except ValueError as exc:
            raise InvalidArgument(str(exc)) from exc
        participants = list(body.tournamentConfig.participantUserIds)
        total_rounds = body.tournamentConfig.totalRounds

    competition = Competition(
        id=uuid.uuid4().hex,
        club_id=club_id,
        name=body.name.strip(),
        type=body.type,
        status="active",
        rules_mode=body.rulesMode,
        override_rules=(
            body.overrideRules.model_dump(exclude_none=True)
            if body.rulesMode == "override" and body.overrideRules
            else None
        ),
        validation_enabled=body.validationEnabled,
        participant_user_ids=participants,
        total_rounds=total_rounds,
        pairing_algorithm=pairing_algorithm,
        active_round_number=None,
        last_completed_round=0,
    )

    async with atomic(session):
        await get_club(session, club_id)
        await require_admin_member(session, club_id, caller_id)
        missing = await missing_members(session, club_id, participants)
        if missing:
            raise InvalidArgument(
                f"Tournament participants are not club members: {', '.join(missing)}"
            )
        session.add(competition)

    logger.info(
        "Competition %s (%s) created in club %s", competition.id, competition.type, club_id
    )
    return competition

async def get_competition(
    session: AsyncSession, club_id: str, competition_id: str
) -> Competition:
    competition = await session.get(Competition, competition_id)
    if competition is None or competition.club_id != club_id:
        raise NotFound(f"Competition {competition_id} not found.")
    return competition
