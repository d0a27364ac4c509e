"""
League-centric service: lifecycle state machine, guards, fixture generation on start.
Start league: generate the double round-robin schedule and flip upcoming -> active
in one transaction.
"""
from __future__ import annotations

import logging
import random
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo

from league_backend.errors import (
    ConflictError,
    InvariantViolation,
    LeagueEngineError,
    LeagueTransitionError,
    NotFoundError,
    ValidationError,
)
from league_backend.models import LeagueStatus, TeamStatus
from league_backend.persistence.db import transaction
from league_backend.persistence.repositories import (
    LeagueMatchRepository,
    LeagueRepository,
    TeamRepository,
)
from league_backend.services.scheduling import generate_league_schedule

logger = logging.getLogger(__name__)

MIN_TEAMS_TO_START = 2

# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    LeagueStatus.UPCOMING.value: {LeagueStatus.ACTIVE.value},
    LeagueStatus.ACTIVE.value: {LeagueStatus.FINISHED.value},
    LeagueStatus.FINISHED.value: set(),
}


@dataclass(frozen=True)
class StartResult:
    league_id: int
    status: str
    start_at: datetime
    total_teams: int
    total_matches: int

    def to_dict(self) -> dict[str, object]:
        return {
            "leagueId": self.league_id,
            "status": self.status,
            "startAt": self.start_at.isoformat(),
            "totalTeams": self.total_teams,
            "totalMatches": self.total_matches,
        }


# ---------- LeagueService ----------


class LeagueService:
    """
    Domain logic for leagues: status transitions and the start guard.
    Persistence is delegated to repositories.
    """

    def __init__(self, schedule_tz: tzinfo | None = None, rng: random.Random | None = None) -> None:
        self._league_repo = LeagueRepository()
        self._team_repo = TeamRepository()
        self._league_match_repo = LeagueMatchRepository()
        self._schedule_tz = schedule_tz
        self._rng = rng

    def _get_league(self, conn: sqlite3.Connection, league_id: int):
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError("League not found.", league_id=league_id)
        return league

    def transition_league_status(self, conn: sqlite3.Connection, league_id: int, new_status: str) -> None:
        """
        Transition league to new_status if valid.
        Valid: upcoming -> active -> finished.
        """
        league = self._get_league(conn, league_id)
        current = league.status
        target = LeagueStatus(new_status).value
        allowed = _VALID_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise LeagueTransitionError(
                f"Invalid transition: {current} -> {target}.", league_id=league_id
            )
        self._league_repo.update_status(conn, league_id, target)

    def can_start(self, conn: sqlite3.Connection, league_id: int) -> bool:
        league = self._league_repo.get(conn, league_id)
        return league is not None and league.status == LeagueStatus.UPCOMING

    def can_enroll(self, conn: sqlite3.Connection, league_id: int) -> bool:
        """Enrollment checkout is only open while the league is upcoming."""
        return self.can_start(conn, league_id)

    # ---------- Start league & scheduling ----------

    def start_league(
        self, conn: sqlite3.Connection, league_id: int, now: datetime | None = None
    ) -> StartResult:
        """
        Check preconditions, insert all fixtures and mark the league active with
        start_at = now. All of it happens in one transaction; on any failure nothing
        is written.
        """
        started_at = now or datetime.now(timezone.utc)
        try:
            with transaction(conn):
                league = self._get_league(conn, league_id)
                if league.status != LeagueStatus.UPCOMING:
                    raise ConflictError("Only upcoming league can be started.", league_id=league_id)
                teams = self._team_repo.list_by_league(conn, league_id, status=TeamStatus.ACTIVE.value)
                if len(teams) < MIN_TEAMS_TO_START:
                    raise ValidationError(
                        "At least 2 active teams are required to start league.", league_id=league_id
                    )
                if self._league_match_repo.count_by_league(conn, league_id) > 0:
                    raise ConflictError("League already has generated matches.", league_id=league_id)

                fixtures = generate_league_schedule(
                    [t.id for t in teams], started_at, rng=self._rng, tz=self._schedule_tz
                )
                total = self._league_match_repo.create_many(conn, league_id, fixtures)
                self._league_repo.mark_started(conn, league_id, started_at)
        except LeagueEngineError:
            raise
        except sqlite3.Error as e:
            logger.exception("League start failed in storage", extra={"league_id": league_id})
            raise InvariantViolation(f"League start failed: {e}", league_id=league_id) from e

        logger.info(
            "League started",
            extra={"league_id": league_id, "total_teams": len(teams), "total_matches": total},
        )
        return StartResult(
            league_id=league_id,
            status=LeagueStatus.ACTIVE.value,
            start_at=started_at,
            total_teams=len(teams),
            total_matches=total,
        )

    def finish_league(self, conn: sqlite3.Connection, league_id: int) -> None:
        """External close-out: active -> finished."""
        with transaction(conn):
            self.transition_league_status(conn, league_id, LeagueStatus.FINISHED)
        logger.info("League finished", extra={"league_id": league_id})
