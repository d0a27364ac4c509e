"""
Repository interfaces for league data.
No business logic; only read/write operations. Callers decide transaction scope
(see persistence.db.transaction); nothing here commits on its own.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable

from league_backend.models import (
    FixtureDraft,
    League,
    LeagueMatch,
    MatchResult,
    Payment,
    RosterPlayer,
    Team,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(s: str | None) -> datetime | None:
    if s is None or s == "":
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


# ---------- LeagueRepository ----------


def _row_to_league(r: sqlite3.Row) -> League:
    return League(
        id=r["id"],
        name=r["name"],
        status=r["status"],
        price=r["price"],
        max_team=r["max_team"],
        min_player=r["min_player"],
        creator=r["creator"],
        created_at=_parse_datetime(r["created_at"]),
        start_at=_parse_datetime(r["start_at"]),
        end_at=_parse_datetime(r["end_at"]),
        rules_json=r["rules_json"],
    )


class LeagueRepository:
    """CRUD for leagues. No business logic."""

    _COLS = "id, name, status, start_at, end_at, price, max_team, min_player, rules_json, creator, created_at"

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        creator: str,
        price: int = 0,
        max_team: int = 0,
        min_player: int = 0,
        status: str = "upcoming",
        start_at: datetime | None = None,
        end_at: datetime | None = None,
        rules_json: str | None = None,
    ) -> League:
        now = _utcnow()
        cur = conn.execute(
            "INSERT INTO leagues (name, status, start_at, end_at, price, max_team, min_player, rules_json, creator, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (name, status, _iso(start_at), _iso(end_at), price, max_team, min_player, rules_json, creator, now.isoformat()),
        )
        return League(
            id=cur.lastrowid, name=name, status=status, price=price, max_team=max_team,
            min_player=min_player, creator=creator, created_at=now,
            start_at=start_at, end_at=end_at, rules_json=rules_json,
        )

    def get(self, conn: sqlite3.Connection, league_id: int) -> League | None:
        row = conn.execute(f"SELECT {self._COLS} FROM leagues WHERE id = ?", (league_id,)).fetchone()
        return _row_to_league(row) if row is not None else None

    def get_many(self, conn: sqlite3.Connection, league_ids: Iterable[int]) -> dict[int, League]:
        ids = list(set(league_ids))
        if not ids:
            return {}
        rows = conn.execute(
            f"SELECT {self._COLS} FROM leagues WHERE id IN ({_placeholders(len(ids))})", ids
        ).fetchall()
        return {r["id"]: _row_to_league(r) for r in rows}

    def update_status(self, conn: sqlite3.Connection, league_id: int, status: str) -> None:
        conn.execute("UPDATE leagues SET status = ? WHERE id = ?", (status, league_id))

    def mark_started(self, conn: sqlite3.Connection, league_id: int, start_at: datetime) -> None:
        """Flip to active and record start_at in one statement."""
        conn.execute(
            "UPDATE leagues SET status = 'active', start_at = ? WHERE id = ?",
            (start_at.isoformat(), league_id),
        )

    def list_by_status(self, conn: sqlite3.Connection, status: str) -> list[League]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM leagues WHERE status = ? ORDER BY start_at IS NULL, start_at ASC, id DESC",
            (status,),
        ).fetchall()
        return [_row_to_league(r) for r in rows]

    def search(
        self,
        conn: sqlite3.Connection,
        query: str = "",
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[int, list[League]]:
        """Return (total matching, page of leagues) newest first."""
        where: list[str] = []
        args: list[Any] = []
        if status:
            where.append("status = ?")
            args.append(status)
        if query:
            like = f"%{query}%"
            where.append("(name LIKE ? OR creator LIKE ? OR status LIKE ?)")
            args.extend([like, like, like])
        clause = f"WHERE {' AND '.join(where)}" if where else ""
        total = conn.execute(f"SELECT COUNT(*) FROM leagues {clause}", args).fetchone()[0]
        rows = conn.execute(
            f"SELECT {self._COLS} FROM leagues {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            [*args, limit, offset],
        ).fetchall()
        return total, [_row_to_league(r) for r in rows]


# ---------- GangRepository ----------


class GangRepository:
    """Display-label lookup for gang codes."""

    def upsert(self, conn: sqlite3.Connection, name: str, label: str | None) -> None:
        conn.execute(
            "INSERT INTO gangs (name, label) VALUES (?, ?) ON CONFLICT(name) DO UPDATE SET label = excluded.label",
            (name, label),
        )

    def get_label(self, conn: sqlite3.Connection, name: str) -> str | None:
        row = conn.execute("SELECT label FROM gangs WHERE name = ?", (name,)).fetchone()
        if row is None or row["label"] is None:
            return None
        label = row["label"].strip()
        return label or None


# ---------- TeamRepository ----------


def _row_to_team(r: sqlite3.Row) -> Team:
    return Team(
        id=r["id"],
        league_id=r["league_id"],
        code=r["code"],
        name=r["name"],
        status=r["status"],
        joined_at=_parse_datetime(r["joined_at"]),
    )


class TeamRepository:
    """League entrants. (league_id, code) is unique at the storage layer."""

    _COLS = "id, league_id, code, name, status, joined_at"

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: int,
        code: str,
        name: str,
        status: str = "active",
        joined_at: datetime | None = None,
    ) -> Team:
        """Plain insert; raises sqlite3.IntegrityError on a duplicate (league_id, code)."""
        joined = joined_at or _utcnow()
        cur = conn.execute(
            "INSERT INTO league_teams (league_id, code, name, status, joined_at) VALUES (?, ?, ?, ?, ?)",
            (league_id, code, name, status, joined.isoformat()),
        )
        return Team(id=cur.lastrowid, league_id=league_id, code=code, name=name, status=status, joined_at=joined)

    def insert_if_absent(
        self,
        conn: sqlite3.Connection,
        league_id: int,
        code: str,
        name: str,
        status: str = "active",
        joined_at: datetime | None = None,
    ) -> bool:
        """Insert unless (league_id, code) already exists. Returns True if a row was inserted."""
        joined = joined_at or _utcnow()
        cur = conn.execute(
            "INSERT INTO league_teams (league_id, code, name, status, joined_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(league_id, code) DO NOTHING",
            (league_id, code, name, status, joined.isoformat()),
        )
        return cur.rowcount == 1

    def get(self, conn: sqlite3.Connection, team_id: int) -> Team | None:
        row = conn.execute(f"SELECT {self._COLS} FROM league_teams WHERE id = ?", (team_id,)).fetchone()
        return _row_to_team(row) if row is not None else None

    def get_many(self, conn: sqlite3.Connection, team_ids: Iterable[int]) -> dict[int, Team]:
        ids = list(set(team_ids))
        if not ids:
            return {}
        rows = conn.execute(
            f"SELECT {self._COLS} FROM league_teams WHERE id IN ({_placeholders(len(ids))})", ids
        ).fetchall()
        return {r["id"]: _row_to_team(r) for r in rows}

    def get_by_league_and_code(self, conn: sqlite3.Connection, league_id: int, code: str) -> Team | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM league_teams WHERE league_id = ? AND code = ?",
            (league_id, code),
        ).fetchone()
        return _row_to_team(row) if row is not None else None

    def list_by_league(self, conn: sqlite3.Connection, league_id: int, status: str | None = None) -> list[Team]:
        """Teams of a league ordered by id (stable order for fixture generation)."""
        if status is None:
            rows = conn.execute(
                f"SELECT {self._COLS} FROM league_teams WHERE league_id = ? ORDER BY id ASC",
                (league_id,),
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT {self._COLS} FROM league_teams WHERE league_id = ? AND status = ? ORDER BY id ASC",
                (league_id, status),
            ).fetchall()
        return [_row_to_team(r) for r in rows]

    def list_by_code(self, conn: sqlite3.Connection, code: str) -> list[Team]:
        """All league entries of one gang, most recently joined first."""
        rows = conn.execute(
            f"SELECT {self._COLS} FROM league_teams WHERE code = ? ORDER BY joined_at DESC, id DESC",
            (code,),
        ).fetchall()
        return [_row_to_team(r) for r in rows]

    def joined_league_ids(self, conn: sqlite3.Connection, code: str, league_ids: Iterable[int]) -> set[int]:
        ids = list(league_ids)
        if not ids:
            return set()
        rows = conn.execute(
            f"SELECT league_id FROM league_teams WHERE code = ? AND league_id IN ({_placeholders(len(ids))})",
            (code, *ids),
        ).fetchall()
        return {r["league_id"] for r in rows}

    def count_by_league(self, conn: sqlite3.Connection, league_ids: Iterable[int]) -> dict[int, int]:
        ids = list(league_ids)
        if not ids:
            return {}
        rows = conn.execute(
            f"SELECT league_id, COUNT(*) AS n FROM league_teams WHERE league_id IN ({_placeholders(len(ids))}) GROUP BY league_id",
            ids,
        ).fetchall()
        return {r["league_id"]: r["n"] for r in rows}


# ---------- LeagueMatchRepository ----------


class LeagueMatchRepository:
    """Fixtures plus their (externally written) results and rosters."""

    _SELECT = (
        "SELECT m.id, m.league_id, m.home_team_id, m.away_team_id, m.round, m.stage, m.zone, "
        "m.scheduled_at, m.status, r.match_id AS r_match_id, r.home_score, r.away_score, "
        "r.result_status, r.winner_team_id "
        "FROM league_matches m LEFT JOIN league_match_results r ON r.match_id = m.id"
    )
    _ORDER = "ORDER BY m.scheduled_at IS NULL, m.scheduled_at ASC, m.id ASC"

    @staticmethod
    def _row_to_match(r: sqlite3.Row) -> LeagueMatch:
        result = None
        if r["r_match_id"] is not None:
            result = MatchResult(
                match_id=r["r_match_id"],
                home_score=r["home_score"],
                away_score=r["away_score"],
                result_status=r["result_status"],
                winner_team_id=r["winner_team_id"],
            )
        return LeagueMatch(
            id=r["id"],
            league_id=r["league_id"],
            home_team_id=r["home_team_id"],
            away_team_id=r["away_team_id"],
            round=r["round"],
            stage=r["stage"],
            zone=r["zone"],
            scheduled_at=_parse_datetime(r["scheduled_at"]),
            status=r["status"],
            result=result,
        )

    def create_many(self, conn: sqlite3.Connection, league_id: int, fixtures: Iterable[FixtureDraft]) -> int:
        now = _utcnow().isoformat()
        rows = [
            (league_id, f.home_team_id, f.away_team_id, f.round, f.stage, _iso(f.scheduled_at), f.status, now)
            for f in fixtures
        ]
        conn.executemany(
            "INSERT INTO league_matches (league_id, home_team_id, away_team_id, round, stage, scheduled_at, status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        return len(rows)

    def count_by_league(self, conn: sqlite3.Connection, league_id: int) -> int:
        return conn.execute("SELECT COUNT(*) FROM league_matches WHERE league_id = ?", (league_id,)).fetchone()[0]

    def count_by_leagues(self, conn: sqlite3.Connection, league_ids: Iterable[int]) -> dict[int, int]:
        ids = list(league_ids)
        if not ids:
            return {}
        rows = conn.execute(
            f"SELECT league_id, COUNT(*) AS n FROM league_matches WHERE league_id IN ({_placeholders(len(ids))}) GROUP BY league_id",
            ids,
        ).fetchall()
        return {r["league_id"]: r["n"] for r in rows}

    def get(self, conn: sqlite3.Connection, match_id: int) -> LeagueMatch | None:
        row = conn.execute(f"{self._SELECT} WHERE m.id = ?", (match_id,)).fetchone()
        return self._row_to_match(row) if row is not None else None

    def list_by_league(self, conn: sqlite3.Connection, league_id: int) -> list[LeagueMatch]:
        rows = conn.execute(f"{self._SELECT} WHERE m.league_id = ? {self._ORDER}", (league_id,)).fetchall()
        return [self._row_to_match(r) for r in rows]

    def list_all(self, conn: sqlite3.Connection) -> list[LeagueMatch]:
        rows = conn.execute(f"{self._SELECT} {self._ORDER}").fetchall()
        return [self._row_to_match(r) for r in rows]

    def list_by_teams(self, conn: sqlite3.Connection, team_ids: Iterable[int]) -> list[LeagueMatch]:
        """Matches where any of team_ids plays home or away."""
        ids = list(team_ids)
        if not ids:
            return []
        ph = _placeholders(len(ids))
        rows = conn.execute(
            f"{self._SELECT} WHERE m.home_team_id IN ({ph}) OR m.away_team_id IN ({ph}) {self._ORDER}",
            [*ids, *ids],
        ).fetchall()
        return [self._row_to_match(r) for r in rows]

    def list_by_leagues(self, conn: sqlite3.Connection, league_ids: Iterable[int]) -> list[LeagueMatch]:
        ids = list(league_ids)
        if not ids:
            return []
        rows = conn.execute(
            f"{self._SELECT} WHERE m.league_id IN ({_placeholders(len(ids))}) {self._ORDER}",
            ids,
        ).fetchall()
        return [self._row_to_match(r) for r in rows]

    def update_status(self, conn: sqlite3.Connection, match_id: int, status: str) -> None:
        conn.execute("UPDATE league_matches SET status = ? WHERE id = ?", (status, match_id))

    def save_result(
        self,
        conn: sqlite3.Connection,
        match_id: int,
        home_score: int,
        away_score: int,
        result_status: str,
        winner_team_id: int | None = None,
    ) -> None:
        """Upsert a result row. Used by the game-server integration and by tests."""
        conn.execute(
            "INSERT INTO league_match_results (match_id, home_score, away_score, result_status, winner_team_id) "
            "VALUES (?, ?, ?, ?, ?) ON CONFLICT(match_id) DO UPDATE SET "
            "home_score = excluded.home_score, away_score = excluded.away_score, "
            "result_status = excluded.result_status, winner_team_id = excluded.winner_team_id",
            (match_id, home_score, away_score, result_status, winner_team_id),
        )

    def list_rosters(self, conn: sqlite3.Connection, match_ids: Iterable[int]) -> list[RosterPlayer]:
        ids = list(match_ids)
        if not ids:
            return []
        rows = conn.execute(
            "SELECT match_id, team_id, citizen_id, player_name, character_name "
            f"FROM league_match_roster_players WHERE match_id IN ({_placeholders(len(ids))}) "
            "ORDER BY match_id ASC, id ASC",
            ids,
        ).fetchall()
        return [
            RosterPlayer(
                match_id=r["match_id"],
                team_id=r["team_id"],
                citizen_id=r["citizen_id"],
                player_name=r["player_name"],
                character_name=r["character_name"],
            )
            for r in rows
        ]

    def add_roster_player(
        self,
        conn: sqlite3.Connection,
        match_id: int,
        team_id: int,
        citizen_id: str,
        player_name: str | None = None,
        character_name: str | None = None,
    ) -> None:
        conn.execute(
            "INSERT INTO league_match_roster_players (match_id, team_id, citizen_id, player_name, character_name) "
            "VALUES (?, ?, ?, ?, ?)",
            (match_id, team_id, citizen_id, player_name, character_name),
        )


# ---------- PaymentRepository ----------


def _row_to_payment(r: sqlite3.Row) -> Payment:
    return Payment(
        id=r["id"],
        invoice_number=r["invoice_number"],
        purpose_type=r["purpose_type"],
        purpose_ref=r["purpose_ref"],
        amount=r["amount"],
        status=r["status"],
        channel=r["channel"],
        metadata_json=r["metadata_json"],
        provider_payload_json=r["provider_payload_json"],
        paid_at=_parse_datetime(r["paid_at"]),
        created_at=_parse_datetime(r["created_at"]),
        updated_at=_parse_datetime(r["updated_at"]),
    )


class PaymentRepository:
    """Local audit records for enrollment invoices."""

    _COLS = (
        "id, invoice_number, purpose_type, purpose_ref, amount, status, channel, "
        "metadata_json, provider_payload_json, paid_at, created_at, updated_at"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        invoice_number: str,
        purpose_type: str,
        purpose_ref: str | None,
        amount: int,
        metadata_json: str | None = None,
        status: str = "pending",
    ) -> Payment:
        now = _utcnow()
        cur = conn.execute(
            "INSERT INTO payments (invoice_number, purpose_type, purpose_ref, amount, status, metadata_json, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (invoice_number, purpose_type, purpose_ref, amount, status, metadata_json, now.isoformat(), now.isoformat()),
        )
        return Payment(
            id=cur.lastrowid, invoice_number=invoice_number, purpose_type=purpose_type,
            purpose_ref=purpose_ref, amount=amount, status=status, created_at=now,
            updated_at=now, metadata_json=metadata_json,
        )

    def get_by_invoice(self, conn: sqlite3.Connection, invoice_number: str) -> Payment | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM payments WHERE invoice_number = ?", (invoice_number,)
        ).fetchone()
        return _row_to_payment(row) if row is not None else None

    def update_status(
        self,
        conn: sqlite3.Connection,
        payment_id: int,
        status: str,
        provider_payload_json: str | None = None,
        channel: str | None = None,
        paid_at: datetime | None = None,
    ) -> None:
        """Set status; payload/channel/paid_at are only overwritten when given."""
        sets = ["status = ?", "updated_at = ?"]
        args: list[Any] = [status, _utcnow().isoformat()]
        if provider_payload_json is not None:
            sets.append("provider_payload_json = ?")
            args.append(provider_payload_json)
        if channel is not None:
            sets.append("channel = ?")
            args.append(channel)
        if paid_at is not None:
            sets.append("paid_at = ?")
            args.append(paid_at.isoformat())
        args.append(payment_id)
        conn.execute(f"UPDATE payments SET {', '.join(sets)} WHERE id = ?", args)
