"""Proposal lifecycle: submit, vote, and commit agreed game results.

Every public coroutine here is one unit of work. Preconditions are re-read
with row locks inside the same transaction that performs the state change,
so two racing callers cannot both pass a check such as "this proposal is
still pending". Voter notifications go out only after the commit and their
failure is logged, never raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import atomic, dialect_name, get_for_update
from ..exceptions import (
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from ..models import (
    Competition,
    CompetitionLeaderboardEntry,
    Game,
    GameVersion,
    GlobalLeaderboardEntry,
    Proposal,
    TournamentRound,
    TournamentTable,
    ValidationRequest,
)
from ..schemas import (
    GameCreateProposalIn,
    GameEditProposalIn,
    RuleSet,
    TableResultIn,
    TournamentContextIn,
)
from ..scoring import mahjong
from . import approval
from .clubs import ADMIN, get_club, get_competition, missing_members, require_member
from .leaderboard_delta import LeaderboardDelta, VersionSnapshot, compute_leaderboard_delta
from .notifications import send_validation_notifications
from .transitions import require_game_transition
from .validation import (
    assert_participants_unique,
    assert_score_map_matches_participants,
    normalize_doc_id,
    resolve_rules,
    union_preserving_order,
)

logger = logging.getLogger(__name__)

PENDING_VALIDATION = "pending_validation"
VALIDATED = "validated"
DISPUTED = "disputed"
ACCEPTED = "accepted"
REJECTED = "rejected"

TABLE_AWAITING_RESULT = "awaiting_result"
_TABLE_OPEN_FOR_CREATE = {TABLE_AWAITING_RESULT, DISPUTED}


@dataclass
class SubmitResult:
    game_id: str
    proposal_id: str
    status: str
    resubmitted: bool = False


@dataclass
class DecisionResult:
    proposal_status: str
    game_status: str
    version_id: str | None = None


def validation_request_id(proposal_id: str, user_id: str) -> str:
    return f"{proposal_id}_{user_id}"


def _request_type(proposal_type: str) -> str:
    return "game_edit" if proposal_type == "edit" else "game_create"


async def _set_request_status(
    session: AsyncSession, proposal: Proposal, user_id: str, status: str
) -> None:
    request_id = validation_request_id(proposal.id, user_id)
    request = await session.get(ValidationRequest, request_id)
    if request is None:
        request = ValidationRequest(
            id=request_id,
            club_id=proposal.club_id,
            user_id=user_id,
            type=_request_type(proposal.type),
            proposal_id=proposal.id,
            game_id=proposal.game_id,
        )
        session.add(request)
    request.status = status


async def _notify_voters(
    session: AsyncSession,
    user_ids: Sequence[str],
    *,
    club_id: str,
    proposal_id: str,
    game_id: str,
    proposal_type: str,
) -> None:
    try:
        await send_validation_notifications(
            session,
            user_ids,
            club_id=club_id,
            proposal_id=proposal_id,
            game_id=game_id,
            proposal_type=proposal_type,
        )
    except Exception:
        logger.warning(
            "Validation notification failed for proposal %s (game %s)",
            proposal_id,
            game_id,
            exc_info=True,
        )
        if session.in_transaction():
            await session.rollback()


async def _lock_competition(
    session: AsyncSession, club_id: str, competition_id: str
) -> Competition:
    competition = await get_for_update(session, Competition, competition_id)
    if competition is None or competition.club_id != club_id:
        raise NotFound(f"Competition {competition_id} not found.")
    if competition.status != "active":
        raise FailedPrecondition("Competition must be active.")
    return competition


async def _lock_table(
    session: AsyncSession, round_id: str, table_index: int
) -> TournamentTable:
    table = await get_for_update(session, TournamentTable, (round_id, table_index))
    if table is None:
        raise NotFound("Tournament table not found.")
    return table


async def _lock_active_round(
    session: AsyncSession, club_id: str, competition_id: str, round_id: str
) -> TournamentRound:
    tournament_round = await get_for_update(session, TournamentRound, round_id)
    if tournament_round is None:
        raise NotFound("Tournament round not found.")
    if (
        tournament_round.club_id != club_id
        or tournament_round.competition_id != competition_id
        or tournament_round.status != "active"
    ):
        raise FailedPrecondition("Round is not active for this competition.")
    return tournament_round


def _assert_table_roster(table: TournamentTable, participants: Sequence[str]) -> None:
    expected = set(table.player_ids or [])
    if len(expected) != len(participants) or expected != set(participants):
        raise FailedPrecondition("Submitted participants do not match table players.")


async def submit_game_create(
    session: AsyncSession, body: GameCreateProposalIn, caller_id: str
) -> SubmitResult:
    """Record a new game and open a unanimous vote over its participants."""

    club_id = normalize_doc_id(body.clubId, "clubs")
    participants = list(body.participants)
    competition_ids = [normalize_doc_id(cid, "competitions") for cid in body.competitionIds]
    context = body.tournamentContext
    assert_participants_unique(participants)

    async with atomic(session):
        club = await get_club(session, club_id)
        member = await require_member(session, club_id, caller_id)

        missing = await missing_members(session, club_id, participants)
        if missing:
            raise InvalidArgument("All participants must be members of the club.")

        competition: Competition | None = None
        if competition_ids:
            competition = await _lock_competition(session, club_id, competition_ids[0])

        is_tournament = competition is not None and competition.type == "tournament"
        if is_tournament and context is None:
            raise FailedPrecondition(
                "Tournament games must be submitted from an active tournament table."
            )
        if not is_tournament and context is not None:
            raise FailedPrecondition(
                "Tournament context is only allowed for tournament games."
            )

        table: TournamentTable | None = None
        round_id: str | None = None
        if context is not None:
            assert competition is not None
            round_id = normalize_doc_id(context.roundId, "tournament rounds")
            await _lock_active_round(session, club_id, competition.id, round_id)
            table = await _lock_table(session, round_id, context.tableIndex)
            if table.status not in _TABLE_OPEN_FOR_CREATE:
                raise FailedPrecondition(
                    f"This table is not accepting result submission (status: {table.status})."
                )
            _assert_table_roster(table, participants)
            if caller_id not in table.player_ids and member.role != ADMIN:
                raise PermissionDenied(
                    "Only table players or a club admin can submit round results."
                )

        rules = resolve_rules(
            club.default_rules,
            competition.rules_mode if competition else None,
            competition.override_rules if competition else None,
        )
        assert_score_map_matches_participants(participants, body.finalScores, rules.scoreSum)
        preview = mahjong.compute_game_outcome(participants, body.finalScores, rules)

        validation_enabled = competition.validation_enabled if competition else True
        view = (
            approval.create_pending(participants)
            if validation_enabled
            else approval.create_approved(participants)
        )

        game = Game(
            id=uuid.uuid4().hex,
            club_id=club_id,
            created_by=caller_id,
            status=PENDING_VALIDATION,
            participants=participants,
            competition_ids=competition_ids,
            active_version_id=None,
            pending_action_type="create",
            tournament_competition_id=competition.id if table is not None else None,
            tournament_round_id=round_id,
            tournament_table_index=context.tableIndex if context else None,
        )
        proposal = Proposal(
            id=uuid.uuid4().hex,
            club_id=club_id,
            game_id=game.id,
            type="create",
            status=PENDING_VALIDATION,
            from_version_id=None,
            proposed_version={
                "participants": participants,
                "finalScores": dict(body.finalScores),
                "competitionIds": competition_ids,
            },
            rules_snapshot=rules.model_dump(),
            computed_preview=preview,
            validation=view.to_record(),
            validation_required=validation_enabled,
            tournament_competition_id=game.tournament_competition_id,
            tournament_round_id=round_id,
            tournament_table_index=game.tournament_table_index,
            created_by=caller_id,
        )
        game.pending_proposal_id = proposal.id

        session.add(game)
        await session.flush()
        session.add(proposal)
        await session.flush()

        if validation_enabled:
            for user_id in participants:
                await _set_request_status(session, proposal, user_id, approval.PENDING)

        if table is not None:
            table.status = PENDING_VALIDATION
            table.proposal_id = proposal.id
            table.game_id = game.id

        status = PENDING_VALIDATION
        if not validation_enabled:
            status = (await _commit_proposal(session, proposal)).game_status

    if validation_enabled:
        await _notify_voters(
            session,
            participants,
            club_id=club_id,
            proposal_id=proposal.id,
            game_id=game.id,
            proposal_type="create",
        )

    return SubmitResult(game_id=game.id, proposal_id=proposal.id, status=status)


def _check_edit_tournament_scope(
    game: Game, competition: Competition | None, participants: Sequence[str]
) -> None:
    linked = game.tournament_competition_id
    if competition is not None and competition.type == "tournament":
        if linked != competition.id:
            raise FailedPrecondition(
                "Only games played at a tournament table can belong to a tournament."
            )
    elif linked:
        raise FailedPrecondition("A tournament game cannot leave its tournament.")

    if linked and set(participants) != set(game.participants or []):
        raise FailedPrecondition("Submitted participants do not match table players.")


async def submit_game_edit(
    session: AsyncSession, game_id: str, body: GameEditProposalIn, caller_id: str
) -> SubmitResult:
    """Propose a corrected result for an existing game.

    Everyone on the current roster and everyone on the proposed roster must
    approve.
    """

    game_id = normalize_doc_id(game_id, "games")
    proposed = body.proposedVersion
    participants = list(proposed.participants)
    competition_ids = [normalize_doc_id(cid, "competitions") for cid in proposed.competitionIds]
    from_version_id = (
        normalize_doc_id(body.fromVersionId, "versions") if body.fromVersionId else None
    )
    assert_participants_unique(participants)

    async with atomic(session):
        game = await get_for_update(session, Game, game_id)
        if game is None:
            raise NotFound(f"Game {game_id} not found.")
        club = await get_club(session, game.club_id)
        await require_member(session, game.club_id, caller_id)

        if game.status == "cancelled":
            raise FailedPrecondition("Cancelled game cannot be edited.")
        if game.tournament_round_id is not None and game.active_version_id is None:
            # The table, not the game, carries an unvalidated tournament result.
            raise FailedPrecondition(
                "Submit a new result for the tournament table instead of editing this game."
            )
        require_game_transition(game.status, PENDING_VALIDATION)
        if from_version_id != game.active_version_id:
            raise FailedPrecondition("fromVersionId must match current active version.")

        missing = await missing_members(session, game.club_id, participants)
        if missing:
            raise InvalidArgument("All participants must be members of the club.")

        competition: Competition | None = None
        if competition_ids:
            competition = await _lock_competition(session, game.club_id, competition_ids[0])
        _check_edit_tournament_scope(game, competition, participants)

        rules = resolve_rules(
            club.default_rules,
            competition.rules_mode if competition else None,
            competition.override_rules if competition else None,
        )
        assert_score_map_matches_participants(participants, proposed.finalScores, rules.scoreSum)
        preview = mahjong.compute_game_outcome(participants, proposed.finalScores, rules)

        required = union_preserving_order(game.participants or [], participants)
        validation_enabled = competition.validation_enabled if competition else True
        view = (
            approval.create_pending(required)
            if validation_enabled
            else approval.create_approved(required)
        )

        proposal = Proposal(
            id=uuid.uuid4().hex,
            club_id=game.club_id,
            game_id=game.id,
            type="edit",
            status=PENDING_VALIDATION,
            from_version_id=from_version_id,
            proposed_version={
                "participants": participants,
                "finalScores": dict(proposed.finalScores),
                "competitionIds": competition_ids,
            },
            rules_snapshot=rules.model_dump(),
            computed_preview=preview,
            validation=view.to_record(),
            validation_required=validation_enabled,
            created_by=caller_id,
        )
        session.add(proposal)
        await session.flush()

        game.status = PENDING_VALIDATION
        game.pending_proposal_id = proposal.id
        game.pending_action_type = "edit"

        if validation_enabled:
            for user_id in required:
                await _set_request_status(session, proposal, user_id, approval.PENDING)

        status = PENDING_VALIDATION
        if not validation_enabled:
            status = (await _commit_proposal(session, proposal)).game_status

    if validation_enabled:
        await _notify_voters(
            session,
            required,
            club_id=game.club_id,
            proposal_id=proposal.id,
            game_id=game.id,
            proposal_type="edit",
        )

    return SubmitResult(game_id=game.id, proposal_id=proposal.id, status=status)


async def _lock_pending_proposal(session: AsyncSession, proposal_id: str) -> Proposal:
    proposal = await get_for_update(session, Proposal, proposal_id)
    if proposal is None:
        raise NotFound(f"Proposal {proposal_id} not found.")
    if proposal.status != PENDING_VALIDATION:
        raise FailedPrecondition(f"Proposal is already {proposal.status}.")
    return proposal


async def approve_proposal(
    session: AsyncSession, proposal_id: str, caller_id: str
) -> DecisionResult:
    """Record the caller's approval; commit the proposal once unanimous."""

    proposal_id = normalize_doc_id(proposal_id, "proposals")
    voter_id = approval.normalize_user_id(caller_id)

    async with atomic(session):
        proposal = await _lock_pending_proposal(session, proposal_id)
        view = approval.apply_decision(proposal.validation, voter_id, "approve")
        proposal.validation = view.to_record()
        await _set_request_status(session, proposal, voter_id, approval.APPROVED)

        if view.unanimity_reached:
            result = await _commit_proposal(session, proposal)
        else:
            game = await session.get(Game, proposal.game_id)
            result = DecisionResult(
                proposal_status=proposal.status,
                game_status=game.status if game else PENDING_VALIDATION,
            )

    return result


async def reject_proposal(
    session: AsyncSession,
    proposal_id: str,
    caller_id: str,
    reason: str | None = None,
) -> DecisionResult:
    """Reject a proposal; the game becomes disputed until a fresh submission."""

    proposal_id = normalize_doc_id(proposal_id, "proposals")
    voter_id = approval.normalize_user_id(caller_id)

    async with atomic(session):
        proposal = await _lock_pending_proposal(session, proposal_id)
        view = approval.apply_decision(proposal.validation, voter_id, "reject")

        game = await get_for_update(session, Game, proposal.game_id)
        if game is None:
            raise NotFound(f"Game {proposal.game_id} not found.")
        require_game_transition(game.status, DISPUTED)

        proposal.status = REJECTED
        proposal.validation = view.to_record()
        proposal.rejection_reason = reason.strip() if reason and reason.strip() else None

        game.status = DISPUTED
        game.pending_proposal_id = None
        game.pending_action_type = None

        if proposal.tournament_round_id is not None and proposal.tournament_table_index is not None:
            table = await get_for_update(
                session,
                TournamentTable,
                (proposal.tournament_round_id, proposal.tournament_table_index),
            )
            if table is not None:
                table.status = DISPUTED

        await _set_request_status(session, proposal, voter_id, approval.REJECTED)

    logger.info("Proposal %s rejected by %s", proposal.id, voter_id)
    return DecisionResult(proposal_status=REJECTED, game_status=DISPUTED)


async def apply_proposal(session: AsyncSession, proposal_id: str) -> DecisionResult:
    """Commit a unanimously approved proposal in its own transaction."""

    proposal_id = normalize_doc_id(proposal_id, "proposals")
    async with atomic(session):
        proposal = await _lock_pending_proposal(session, proposal_id)
        result = await _commit_proposal(session, proposal)
    return result


async def _increment_leaderboard(session: AsyncSession, delta: LeaderboardDelta) -> None:
    insert = pg_insert if dialect_name(session) == "postgresql" else sqlite_insert

    if delta.scope == "competition":
        table = CompetitionLeaderboardEntry.__table__
        values = {
            "club_id": delta.club_id,
            "competition_id": delta.competition_id,
            "user_id": delta.user_id,
        }
        key = ["club_id", "competition_id", "user_id"]
    else:
        table = GlobalLeaderboardEntry.__table__
        values = {"club_id": delta.club_id, "user_id": delta.user_id}
        key = ["club_id", "user_id"]

    stmt = insert(table).values(
        **values,
        total_points=delta.total_points_delta,
        games_played=delta.games_played_delta,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=key,
        set_={
            "total_points": table.c.total_points + stmt.excluded.total_points,
            "games_played": table.c.games_played + stmt.excluded.games_played,
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)


async def _next_version_number(session: AsyncSession, game_id: str) -> int:
    current = await session.scalar(
        select(func.max(GameVersion.version_number)).where(GameVersion.game_id == game_id)
    )
    return (current or 0) + 1


async def _commit_proposal(session: AsyncSession, proposal: Proposal) -> DecisionResult:
    """Turn an approved proposal into the game's active version.

    Must run inside an open unit of work holding the proposal lock.
    """

    view = approval.resolve(proposal.validation)
    if view.has_rejection:
        raise FailedPrecondition("Proposal already rejected.")
    if not view.unanimity_reached:
        raise FailedPrecondition("Unanimity not reached yet.")

    game = await get_for_update(session, Game, proposal.game_id)
    if game is None:
        raise NotFound(f"Game {proposal.game_id} not found.")
    require_game_transition(game.status, VALIDATED)

    old_version: GameVersion | None = None
    if game.active_version_id:
        old_version = await session.get(GameVersion, game.active_version_id)

    proposed: Mapping = proposal.proposed_version
    version = GameVersion(
        id=uuid.uuid4().hex,
        game_id=game.id,
        club_id=proposal.club_id,
        version_number=await _next_version_number(session, game.id),
        participants=list(proposed["participants"]),
        final_scores=dict(proposed["finalScores"]),
        competition_ids=list(proposed.get("competitionIds") or []),
        rules_snapshot=proposal.rules_snapshot,
        computed=proposal.computed_preview,
        created_by=proposal.created_by,
    )
    session.add(version)

    deltas = compute_leaderboard_delta(
        VersionSnapshot.from_version(old_version) if old_version is not None else None,
        VersionSnapshot.from_version(version),
    )
    for delta in deltas:
        await _increment_leaderboard(session, delta)

    game.status = VALIDATED
    game.participants = version.participants
    game.competition_ids = version.competition_ids
    game.active_version_id = version.id
    game.pending_proposal_id = None
    game.pending_action_type = None

    proposal.status = ACCEPTED
    proposal.validation = view.to_record()

    if proposal.validation_required:
        for user_id in view.required_user_ids:
            await _set_request_status(session, proposal, user_id, approval.APPROVED)

    if proposal.tournament_round_id is not None and proposal.tournament_table_index is not None:
        await _validate_tournament_table(session, proposal)

    await session.flush()
    logger.info(
        "Proposal %s accepted: game %s now at version %s",
        proposal.id,
        game.id,
        version.version_number,
    )
    return DecisionResult(
        proposal_status=ACCEPTED, game_status=VALIDATED, version_id=version.id
    )


async def _validate_tournament_table(session: AsyncSession, proposal: Proposal) -> None:
    table = await get_for_update(
        session,
        TournamentTable,
        (proposal.tournament_round_id, proposal.tournament_table_index),
    )
    if table is None:
        return
    table.status = VALIDATED
    table.proposal_id = proposal.id
    table.game_id = proposal.game_id
    await session.flush()

    tournament_round = await get_for_update(
        session, TournamentRound, proposal.tournament_round_id
    )
    if tournament_round is None or tournament_round.status == "completed":
        return

    statuses = (
        await session.execute(
            select(TournamentTable.status).where(
                TournamentTable.round_id == tournament_round.id
            )
        )
    ).scalars().all()
    if not statuses or any(status != VALIDATED for status in statuses):
        return

    tournament_round.status = "completed"
    competition = await get_for_update(session, Competition, tournament_round.competition_id)
    if competition is None:
        return

    competition.active_round_number = None
    competition.last_completed_round = max(
        competition.last_completed_round or 0, tournament_round.round_number
    )
    logger.info(
        "Round %s of competition %s completed",
        tournament_round.round_number,
        competition.id,
    )
    total_rounds = competition.total_rounds or 0
    if total_rounds > 0 and tournament_round.round_number >= total_rounds:
        competition.status = "archived"
        logger.info("Competition %s archived after final round", competition.id)


async def submit_tournament_table_result(
    session: AsyncSession,
    club_id: str,
    competition_id: str,
    round_id: str,
    table_index: int,
    body: TableResultIn,
    caller_id: str,
) -> SubmitResult:
    """Submit (or resubmit) the result of one table in an active round.

    An open or disputed table starts a new game for the table roster. A
    table already awaiting votes has its pending proposal replaced and the
    vote restarted.
    """

    club_id = normalize_doc_id(club_id, "clubs")
    competition_id = normalize_doc_id(competition_id, "competitions")
    round_id = normalize_doc_id(round_id, "tournament rounds")

    async with atomic(session):
        member = await require_member(session, club_id, caller_id)
        competition = await get_competition(session, club_id, competition_id)
        if competition.type != "tournament":
            raise FailedPrecondition("Table results can only be submitted for tournaments.")
        await _lock_active_round(session, club_id, competition_id, round_id)
        table = await _lock_table(session, round_id, table_index)
        if table.status not in _TABLE_OPEN_FOR_CREATE | {PENDING_VALIDATION}:
            raise FailedPrecondition(
                f"Result cannot be submitted for this table status ({table.status})."
            )
        player_ids = list(table.player_ids or [])
        if caller_id not in player_ids and member.role != ADMIN:
            raise PermissionDenied("Only table players or a club admin can submit this result.")
        table_status = table.status

    if table_status != PENDING_VALIDATION:
        return await submit_game_create(
            session,
            GameCreateProposalIn(
                clubId=club_id,
                participants=player_ids,
                finalScores=dict(body.finalScores),
                competitionIds=[competition_id],
                tournamentContext=TournamentContextIn(roundId=round_id, tableIndex=table_index),
            ),
            caller_id,
        )

    async with atomic(session):
        table = await _lock_table(session, round_id, table_index)
        if table.status != PENDING_VALIDATION:
            raise FailedPrecondition("Table is no longer awaiting validation.")
        if not table.proposal_id or not table.game_id:
            raise FailedPrecondition("Missing pending proposal linkage for this table.")

        proposal = await get_for_update(session, Proposal, table.proposal_id)
        game = await get_for_update(session, Game, table.game_id)
        if proposal is None or game is None:
            raise NotFound("Pending proposal or game not found for this table.")
        if proposal.status != PENDING_VALIDATION:
            raise FailedPrecondition("Pending proposal is no longer editable.")
        if game.status != PENDING_VALIDATION:
            raise FailedPrecondition("Game is no longer in pending validation status.")

        competition = await get_competition(session, club_id, competition_id)
        rules = RuleSet.model_validate(proposal.rules_snapshot)
        assert_score_map_matches_participants(player_ids, body.finalScores, rules.scoreSum)
        preview = mahjong.compute_game_outcome(player_ids, body.finalScores, rules)

        previous = approval.resolve(proposal.validation)
        required = union_preserving_order(previous.required_user_ids, player_ids)
        validation_enabled = bool(competition.validation_enabled)
        view = (
            approval.create_pending(required)
            if validation_enabled
            else approval.create_approved(required)
        )

        proposal.proposed_version = {
            "participants": player_ids,
            "finalScores": dict(body.finalScores),
            "competitionIds": [competition_id],
        }
        proposal.computed_preview = preview
        proposal.validation = view.to_record()
        proposal.validation_required = validation_enabled

        game.participants = player_ids
        game.competition_ids = [competition_id]

        if validation_enabled:
            for user_id in required:
                await _set_request_status(session, proposal, user_id, approval.PENDING)

        status = PENDING_VALIDATION
        if not validation_enabled:
            status = (await _commit_proposal(session, proposal)).game_status

    if validation_enabled:
        await _notify_voters(
            session,
            required,
            club_id=club_id,
            proposal_id=proposal.id,
            game_id=game.id,
            proposal_type=proposal.type,
        )

    return SubmitResult(
        game_id=game.id, proposal_id=proposal.id, status=status, resubmitted=True
    )
