from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field, model_validator, field_validator, ConfigDict

Rounding = Literal["nearest_100", "none"]
CompetitionType = Literal["championship", "tournament"]
PairingAlgorithm = Literal["performance_swiss", "precomputed_min_repeats"]


class RedFivesCount(BaseModel):
    man: int = Field(default=1, ge=0, le=4)
    pin: int = Field(default=1, ge=0, le=4)
    sou: int = Field(default=1, ge=0, le=4)

    model_config = ConfigDict(extra="forbid")


class RuleSet(BaseModel):
    """Scoring configuration for a club or competition.

    Only ``startingPoints`` through ``rounding`` feed the scoring transform.
    The remaining toggles describe optional table rules; they are stored and
    returned untouched so clients can display them.
    """

    startingPoints: int = 25000
    returnPoints: int = 30000
    uma: List[float] = Field(
        default_factory=lambda: [20, 10, -10, -20], min_length=4, max_length=4
    )
    oka: float = 0
    scoreSum: int = 100000
    rounding: Rounding = "nearest_100"

    allowOpenTanyao: bool = True
    useRedFives: bool = True
    redFivesCount: RedFivesCount = Field(default_factory=RedFivesCount)
    useIppatsu: bool = True
    useUraDora: bool = True
    useKanDora: bool = True
    useKanUraDora: bool = True
    headBump: bool = False
    agariYame: bool = False
    tobiEnd: bool = True
    honbaPoints: int = 300
    notenPaymentTotal: int = 3000
    riichiBetPoints: int = 1000

    model_config = ConfigDict(extra="forbid")


class RuleSetOverride(BaseModel):
    """Partial RuleSet stored on a competition; unset fields inherit."""

    startingPoints: Optional[int] = None
    returnPoints: Optional[int] = None
    uma: Optional[List[float]] = Field(default=None, min_length=4, max_length=4)
    oka: Optional[float] = None
    scoreSum: Optional[int] = None
    rounding: Optional[Rounding] = None
    allowOpenTanyao: Optional[bool] = None
    useRedFives: Optional[bool] = None
    redFivesCount: Optional[RedFivesCount] = None
    useIppatsu: Optional[bool] = None
    useUraDora: Optional[bool] = None
    useKanDora: Optional[bool] = None
    useKanUraDora: Optional[bool] = None
    headBump: Optional[bool] = None
    agariYame: Optional[bool] = None
    tobiEnd: Optional[bool] = None
    honbaPoints: Optional[int] = None
    notenPaymentTotal: Optional[int] = None
    riichiBetPoints: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


def _strip_id(value: Any, field_name: str) -> Any:
    """Trim ``value`` and keep the last segment of path-like ids (``users/abc``)."""
    if not isinstance(value, str):
        return value
    parts = [part.strip() for part in value.split("/") if part.strip()]
    if not parts:
        raise ValueError(f"{field_name} must not be empty")
    return parts[-1]


def _strip_score_keys(value: Dict[str, int]) -> Dict[str, int]:
    return {_strip_id(key, "finalScores"): score for key, score in value.items()}


class ClubOut(BaseModel):
    id: str
    name: str


class ClubCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    defaultRules: Optional[RuleSet] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("id must be a string")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("id must not be empty")
        if any(ch.isspace() for ch in trimmed) or "/" in trimmed:
            raise ValueError("id must not contain whitespace or slashes")
        return trimmed

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("name must be a string")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("name must not be empty")
        return trimmed


class ClubMemberUpsert(BaseModel):
    role: Literal["admin", "member"]

    model_config = ConfigDict(extra="forbid")


class ClubMemberOut(BaseModel):
    ok: bool = True
    userId: str
    role: str


class TournamentConfigIn(BaseModel):
    participantUserIds: List[str] = Field(..., min_length=4)
    totalRounds: int = Field(..., ge=1)
    pairingAlgorithm: str = "performance_swiss"

    model_config = ConfigDict(extra="forbid")

    @field_validator("participantUserIds")
    @classmethod
    def _validate_participants(cls, value: List[str]) -> List[str]:
        cleaned = [_strip_id(pid, "participantUserIds") for pid in value]
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("participantUserIds must be unique")
        if len(cleaned) % 4 != 0:
            raise ValueError("participantUserIds must be a multiple of 4")
        return cleaned


class CompetitionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: CompetitionType
    rulesMode: Literal["inherit", "override"] = "inherit"
    overrideRules: Optional[RuleSetOverride] = None
    validationEnabled: bool = True
    tournamentConfig: Optional[TournamentConfigIn] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_tournament_config(self) -> "CompetitionCreate":
        if self.type == "tournament" and self.tournamentConfig is None:
            raise ValueError("tournament competitions require tournamentConfig")
        if self.type == "championship" and self.tournamentConfig is not None:
            raise ValueError("championship competitions cannot have tournamentConfig")
        if self.rulesMode == "override" and self.overrideRules is None:
            raise ValueError("overrideRules is required when rulesMode is 'override'")
        return self


class TournamentStateOut(BaseModel):
    activeRoundNumber: Optional[int] = None
    lastCompletedRound: int = 0


class CompetitionOut(BaseModel):
    id: str
    clubId: str
    name: str
    type: str
    status: str
    rulesMode: str
    overrideRules: Optional[Dict[str, Any]] = None
    validationEnabled: bool
    participantUserIds: List[str] = Field(default_factory=list)
    totalRounds: int = 0
    pairingAlgorithm: Optional[str] = None
    tournamentState: TournamentStateOut


class TournamentContextIn(BaseModel):
    roundId: str = Field(..., min_length=1)
    tableIndex: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


class GameCreateProposalIn(BaseModel):
    clubId: str = Field(..., min_length=1)
    participants: List[str] = Field(..., min_length=4, max_length=4)
    finalScores: Dict[str, int]
    competitionIds: List[str] = Field(default_factory=list, max_length=1)
    tournamentContext: Optional[TournamentContextIn] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("participants", "competitionIds")
    @classmethod
    def _strip_ids(cls, value: List[str]) -> List[str]:
        return [_strip_id(item, "id") for item in value]

    @field_validator("finalScores")
    @classmethod
    def _strip_score_ids(cls, value: Dict[str, int]) -> Dict[str, int]:
        return _strip_score_keys(value)


class ProposedVersionIn(BaseModel):
    participants: List[str] = Field(..., min_length=4, max_length=4)
    finalScores: Dict[str, int]
    competitionIds: List[str] = Field(default_factory=list, max_length=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("participants", "competitionIds")
    @classmethod
    def _strip_ids(cls, value: List[str]) -> List[str]:
        return [_strip_id(item, "id") for item in value]

    @field_validator("finalScores")
    @classmethod
    def _strip_score_ids(cls, value: Dict[str, int]) -> Dict[str, int]:
        return _strip_score_keys(value)


class GameEditProposalIn(BaseModel):
    # None when the game has never been validated (e.g. a disputed create).
    fromVersionId: Optional[str] = None
    proposedVersion: ProposedVersionIn

    model_config = ConfigDict(extra="forbid")


class RejectProposalIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(extra="forbid")


class TableResultIn(BaseModel):
    finalScores: Dict[str, int]

    model_config = ConfigDict(extra="forbid")

    @field_validator("finalScores")
    @classmethod
    def _strip_score_ids(cls, value: Dict[str, int]) -> Dict[str, int]:
        return _strip_score_keys(value)


class ProposalSubmitOut(BaseModel):
    gameId: str
    proposalId: str
    status: str
    resubmitted: bool = False


class ProposalDecisionOut(BaseModel):
    proposalStatus: str
    gameStatus: str
    versionId: Optional[str] = None


class ComputedResultOut(BaseModel):
    ranks: Dict[str, int]
    totalPoints: Dict[str, float]


class VersionOut(BaseModel):
    id: str
    gameId: str
    versionNumber: int
    participants: List[str]
    finalScores: Dict[str, int]
    competitionIds: List[str]
    rulesSnapshot: Dict[str, Any]
    computed: ComputedResultOut
    createdBy: str
    createdAt: Optional[datetime] = None


class GameOut(BaseModel):
    id: str
    clubId: str
    status: str
    participants: List[str]
    competitionIds: List[str]
    activeVersionId: Optional[str] = None
    pendingProposalId: Optional[str] = None
    pendingActionType: Optional[str] = None
    tournamentRoundId: Optional[str] = None
    tournamentTableIndex: Optional[int] = None
    activeVersion: Optional[VersionOut] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class ValidationViewOut(BaseModel):
    requiredUserIds: List[str]
    userApprovals: Dict[str, str]
    approvedBy: List[str]
    rejectedBy: List[str]
    pendingUserIds: List[str]
    unanimityReached: bool
    hasRejection: bool


class ProposalOut(BaseModel):
    id: str
    clubId: str
    gameId: str
    type: str
    status: str
    fromVersionId: Optional[str] = None
    proposedVersion: Dict[str, Any]
    rulesSnapshot: Dict[str, Any]
    computedPreview: ComputedResultOut
    validation: ValidationViewOut
    rejectionReason: Optional[str] = None
    createdBy: str
    createdAt: Optional[datetime] = None


class ValidationRequestOut(BaseModel):
    id: str
    clubId: str
    type: str
    proposalId: str
    gameId: str
    status: str
    updatedAt: Optional[datetime] = None


class TableAssignmentOut(BaseModel):
    tableIndex: int
    playerIds: List[str]


class TournamentTableOut(BaseModel):
    tableIndex: int
    playerIds: List[str]
    status: str
    proposalId: Optional[str] = None
    gameId: Optional[str] = None


class RoundCreateOut(BaseModel):
    roundId: str
    roundNumber: int
    tables: List[TableAssignmentOut]


class RoundOut(BaseModel):
    id: str
    competitionId: str
    roundNumber: int
    status: str
    tables: Dict[str, TournamentTableOut]


class StandingOut(BaseModel):
    rank: int
    userId: str
    displayName: Optional[str] = None
    totalPoints: float
    gamesPlayed: int


class StandingsOut(BaseModel):
    clubId: str
    competitionId: Optional[str] = None
    scope: Literal["competition", "global"]
    standings: List[StandingOut]


class PushSubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionCreate(BaseModel):
    endpoint: str = Field(..., min_length=1)
    keys: PushSubscriptionKeys
    content_encoding: str | None = Field(default=None, alias="contentEncoding")

    model_config = ConfigDict(populate_by_name=True)


class PushSubscriptionOut(BaseModel):
    id: str
    endpoint: str
    createdAt: datetime


class NotificationOut(BaseModel):
    id: str
    type: str
    payload: Dict[str, Any]
    createdAt: datetime
    readAt: Optional[datetime] = None


class NotificationListOut(BaseModel):
    items: List[NotificationOut]
    unreadCount: int
