"""Helpers for tournament round orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import PAIRING_SCHEDULE_ATTEMPTS
from ..db import atomic, get_for_update
from ..db_errors import is_unique_violation
from ..exceptions import AlreadyExists, FailedPrecondition, NotFound
from ..models import (
    Competition,
    CompetitionLeaderboardEntry,
    TournamentRound,
    TournamentTable,
)
from .clubs import missing_members, require_admin_member
from .pairing import (
    PRECOMPUTED_MIN_REPEATS,
    TABLE_SIZE,
    TableAssignment,
    build_encounter_counts,
    generate_incremental_pairings,
    generate_precomputed_schedule,
    normalize_pairing_algorithm,
    stable_seed,
)
from .validation import normalize_doc_id

logger = logging.getLogger(__name__)

SCHEDULED = "scheduled"
ACTIVE = "active"


@dataclass
class RoundCreated:
    round_id: str
    round_number: int
    tables: list[TableAssignment]


def round_doc_id(competition_id: str, round_number: int) -> str:
    return f"{competition_id}_round_{round_number:02d}"


async def list_rounds(
    session: AsyncSession, competition_id: str
) -> list[tuple[TournamentRound, list[TournamentTable]]]:
    rounds = (
        await session.execute(
            select(TournamentRound)
            .where(TournamentRound.competition_id == competition_id)
            .order_by(TournamentRound.round_number)
        )
    ).scalars().all()
    if not rounds:
        return []

    tables = (
        await session.execute(
            select(TournamentTable)
            .where(TournamentTable.round_id.in_([r.id for r in rounds]))
            .order_by(TournamentTable.round_id, TournamentTable.table_index)
        )
    ).scalars().all()
    by_round: dict[str, list[TournamentTable]] = {}
    for table in tables:
        by_round.setdefault(table.round_id, []).append(table)
    return [(r, by_round.get(r.id, [])) for r in rounds]


async def _add_round(
    session: AsyncSession,
    competition: Competition,
    round_number: int,
    status: str,
    assignments: list[TableAssignment],
) -> TournamentRound:
    tournament_round = TournamentRound(
        id=round_doc_id(competition.id, round_number),
        club_id=competition.club_id,
        competition_id=competition.id,
        round_number=round_number,
        status=status,
    )
    session.add(tournament_round)
    await session.flush()
    for assignment in assignments:
        session.add(
            TournamentTable(
                round_id=tournament_round.id,
                table_index=assignment.table_index,
                player_ids=list(assignment.player_ids),
                status="awaiting_result",
            )
        )
    return tournament_round


async def _standings_points(
    session: AsyncSession, competition: Competition
) -> dict[str, float]:
    rows = await session.execute(
        select(
            CompetitionLeaderboardEntry.user_id,
            CompetitionLeaderboardEntry.total_points,
        ).where(
            CompetitionLeaderboardEntry.club_id == competition.club_id,
            CompetitionLeaderboardEntry.competition_id == competition.id,
        )
    )
    return {user_id: float(points or 0) for user_id, points in rows.all()}


async def create_next_round(
    session: AsyncSession, club_id: str, competition_id: str, caller_id: str
) -> RoundCreated:
    """Open the next round of a tournament.

    ``performance_swiss`` pairs a single new round from current standings.
    ``precomputed_min_repeats`` writes the whole schedule on the first call
    and promotes the next scheduled round on later calls.
    """

    club_id = normalize_doc_id(club_id, "clubs")
    competition_id = normalize_doc_id(competition_id, "competitions")

    try:
        async with atomic(session):
            await require_admin_member(session, club_id, caller_id)

            competition = await get_for_update(session, Competition, competition_id)
            if competition is None or competition.club_id != club_id:
                raise NotFound(f"Competition {competition_id} not found.")
            if competition.type != "tournament":
                raise FailedPrecondition("Round generation is only available for tournaments.")
            if competition.status != "active":
                raise FailedPrecondition("Tournament must be active.")

            try:
                algorithm = normalize_pairing_algorithm(competition.pairing_algorithm)
            except ValueError as exc:
                raise FailedPrecondition(str(exc)) from exc

            participants = list(competition.participant_user_ids or [])
            if len(participants) < TABLE_SIZE or len(participants) % TABLE_SIZE != 0:
                raise FailedPrecondition("Tournament participants must be a multiple of 4.")
            if len(set(participants)) != len(participants):
                raise FailedPrecondition("Tournament participants must be unique.")
            if await missing_members(session, club_id, participants):
                raise FailedPrecondition("All tournament participants must be club members.")

            total_rounds = competition.total_rounds or 0
            if total_rounds <= 0:
                raise FailedPrecondition("Tournament total rounds must be greater than zero.")
            if competition.active_round_number is not None:
                raise FailedPrecondition(
                    f"Round {competition.active_round_number} is still active."
                )

            existing = await list_rounds(session, competition.id)
            if any(r.status == ACTIVE for r, _ in existing):
                raise FailedPrecondition("There is already an active round.")

            played = max(
                (r.round_number for r, _ in existing if r.status != SCHEDULED), default=0
            )
            if played >= total_rounds:
                raise FailedPrecondition("Tournament already reached configured total rounds.")

            if algorithm == PRECOMPUTED_MIN_REPEATS:
                created = await _activate_precomputed_round(
                    session, competition, participants, existing
                )
            else:
                created = await _create_incremental_round(
                    session, competition, participants, existing, played + 1
                )

            competition.active_round_number = created.round_number
            await session.flush()
    except IntegrityError as exc:
        if is_unique_violation(exc):
            raise AlreadyExists("Round already exists.") from exc
        raise

    logger.info(
        "Round %s of competition %s is now active with %d tables",
        created.round_number,
        competition_id,
        len(created.tables),
    )
    return created


async def _activate_precomputed_round(
    session: AsyncSession,
    competition: Competition,
    participants: list[str],
    existing: list[tuple[TournamentRound, list[TournamentTable]]],
) -> RoundCreated:
    if not existing:
        schedule = generate_precomputed_schedule(
            participants,
            competition.total_rounds,
            attempts=PAIRING_SCHEDULE_ATTEMPTS,
        )
        for index, assignments in enumerate(schedule):
            number = index + 1
            await _add_round(
                session,
                competition,
                number,
                ACTIVE if number == 1 else SCHEDULED,
                assignments,
            )
        return RoundCreated(
            round_id=round_doc_id(competition.id, 1),
            round_number=1,
            tables=schedule[0],
        )

    scheduled = sorted(
        (pair for pair in existing if pair[0].status == SCHEDULED),
        key=lambda pair: pair[0].round_number,
    )
    if not scheduled:
        raise FailedPrecondition("No scheduled round available for activation.")

    next_round, tables = scheduled[0]
    next_round = await get_for_update(session, TournamentRound, next_round.id)
    if next_round is None or next_round.status != SCHEDULED:
        raise FailedPrecondition("Round is not in scheduled status.")
    next_round.status = ACTIVE
    return RoundCreated(
        round_id=next_round.id,
        round_number=next_round.round_number,
        tables=[
            TableAssignment(table_index=t.table_index, player_ids=list(t.player_ids))
            for t in sorted(tables, key=lambda t: t.table_index)
        ],
    )


async def _create_incremental_round(
    session: AsyncSession,
    competition: Competition,
    participants: list[str],
    existing: list[tuple[TournamentRound, list[TournamentTable]]],
    round_number: int,
) -> RoundCreated:
    standings = await _standings_points(session, competition)
    encounters = build_encounter_counts(
        [table.player_ids for table in tables] for _, tables in existing
    )
    assignments = generate_incremental_pairings(
        participants,
        standings,
        encounters,
        seed=stable_seed(competition.id, round_number),
    )
    tournament_round = await _add_round(session, competition, round_number, ACTIVE, assignments)
    return RoundCreated(
        round_id=tournament_round.id,
        round_number=round_number,
        tables=assignments,
    )
