"""
Data models for the league backend.
Domain objects only; no persistence or API logic.

A league is a season-scoped competition; teams (gangs) enroll into it, the fixture
generator creates its matches, and results are written by an external game-server
integration. Standings are derived, never stored.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- League status (state machine) ----------
class LeagueStatus(str, Enum):
    """League lifecycle: upcoming → active → finished."""
    UPCOMING = "upcoming"  # Accepting enrollments
    ACTIVE = "active"      # Fixtures generated, matches being played
    FINISHED = "finished"  # Closed by an external process


class TeamStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    WITHDRAWN = "withdrawn"


# ---------- League match (fixture) status ----------
class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    FINISHED = "finished"
    CANCELED = "canceled"


class ResultStatus(str, Enum):
    HOME_WIN = "home_win"
    AWAY_WIN = "away_win"
    DRAW = "draw"
    CANCELED = "canceled"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELED = "canceled"


LEAGUE_JOIN_PURPOSE_TYPE = "league_join"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------- League ----------
@dataclass
class League:
    """
    Competition container. Status is changed only by the lifecycle guard
    (upcoming → active) or by the external close-out (active → finished).
    rules_json is the serialized LeagueRules blob; see league_backend.schemas.
    """
    id: int
    name: str
    status: str  # LeagueStatus value
    price: int
    max_team: int
    min_player: int
    creator: str
    created_at: datetime
    start_at: datetime | None = None
    end_at: datetime | None = None
    rules_json: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "startAt": _iso(self.start_at),
            "endAt": _iso(self.end_at),
            "price": self.price,
            "maxTeam": self.max_team,
            "minPlayer": self.min_player,
            "creator": self.creator,
            "createdAt": _iso(self.created_at),
        }


# ---------- Team (league entrant) ----------
@dataclass
class Team:
    """A gang enrolled into one league. At most one row per (league_id, code)."""
    id: int
    league_id: int
    code: str
    name: str
    status: str  # TeamStatus value
    joined_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "leagueId": self.league_id,
            "code": self.code,
            "name": self.name,
            "status": self.status,
            "joinedAt": _iso(self.joined_at),
        }


# ---------- MatchResult ----------
@dataclass
class MatchResult:
    """Final score of a match. Written externally; read-only here."""
    match_id: int
    home_score: int
    away_score: int
    result_status: str
    winner_team_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "resultStatus": self.result_status,
            "winnerTeamId": self.winner_team_id,
        }


# ---------- LeagueMatch (fixture) ----------
@dataclass
class LeagueMatch:
    """
    One fixture. Created in bulk by the fixture generator; home_team_id != away_team_id.
    result is attached when the caller loads matches together with their results.
    """
    id: int
    league_id: int
    home_team_id: int
    away_team_id: int
    round: int
    stage: str
    zone: str | None
    scheduled_at: datetime | None
    status: str  # MatchStatus value
    result: MatchResult | None = None


@dataclass
class FixtureDraft:
    """A generated fixture not yet persisted."""
    home_team_id: int
    away_team_id: int
    round: int
    scheduled_at: datetime | None = None
    stage: str = "regular"
    status: str = MatchStatus.SCHEDULED.value


@dataclass
class RosterPlayer:
    match_id: int
    team_id: int
    citizen_id: str
    player_name: str | None
    character_name: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "citizenId": self.citizen_id,
            "playerName": self.player_name,
            "characterName": self.character_name or self.player_name or self.citizen_id,
        }


# ---------- Standing (derived) ----------
@dataclass
class Standing:
    matches_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_diff: int = 0
    points: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "matchesPlayed": self.matches_played,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "goalsFor": self.goals_for,
            "goalsAgainst": self.goals_against,
            "goalDiff": self.goal_diff,
            "points": self.points,
        }


# ---------- Payment (local audit record of an enrollment invoice) ----------
@dataclass
class Payment:
    id: int
    invoice_number: str
    purpose_type: str
    purpose_ref: str | None
    amount: int
    status: str  # PaymentStatus value
    created_at: datetime
    updated_at: datetime
    channel: str | None = None
    metadata_json: str | None = None
    provider_payload_json: str | None = None
    paid_at: datetime | None = None
