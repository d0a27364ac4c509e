#!/usr/bin/env python3
"""
League slice: Create league → Enroll gangs from paid invoices → Start → Record results → Standings.
Run from project root: python3 scripts/league_slice.py [--teams 4] [--seed 7]
"""
from __future__ import annotations

import argparse
import random
import sys
from datetime import datetime, timezone
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from league_backend.logging_config import setup_logging
from league_backend.models import MatchStatus, ResultStatus
from league_backend.persistence import (
    GangRepository,
    LeagueMatchRepository,
    LeagueRepository,
    get_connection,
    init_db,
)
from league_backend.services.enrollment import EnrollmentService
from league_backend.services.invoice import build_league_invoice
from league_backend.services.league_service import LeagueService
from league_backend.services.queries import league_table

GANGS = [
    ("ballas", "Ballas"),
    ("vagos", "Los Santos Vagos"),
    ("families", "Grove Street Families"),
    ("aztecas", "Varrios Los Aztecas"),
    ("triads", "Mountain Cloud Boys"),
    ("lost", "The Lost MC"),
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one league through its lifecycle")
    parser.add_argument("--teams", type=int, default=4, help="Number of gangs to enroll (2-6)")
    parser.add_argument("--seed", type=int, default=7, help="RNG seed for fixtures and results")
    args = parser.parse_args()
    n_teams = max(2, min(args.teams, len(GANGS)))

    setup_logging("INFO")
    # Use data/league_slice.db for demo (distinct from league.db)
    db_path = PROJECT_ROOT / "data" / "league_slice.db"
    init_db(db_path)

    rng = random.Random(args.seed)
    conn = get_connection(db_path)
    try:
        # 1. League
        league = LeagueRepository().create(conn, "Slice Demo League", "league-slice", price=50000, max_team=n_teams)
        print(f"Created league: {league.name} (id={league.id})")

        # 2. Enroll through the same path a paid invoice takes; deliver each one twice
        gang_repo = GangRepository()
        enrollment = EnrollmentService()
        for code, label in GANGS[:n_teams]:
            gang_repo.upsert(conn, code, label)
            invoice = build_league_invoice(league.id, code)
            first = enrollment.insert_team_from_invoice(conn, invoice)
            again = enrollment.insert_team_from_invoice(conn, invoice)
            print(f"  {invoice}: inserted={first.inserted}, redelivery inserted={again.inserted}")

        # 3. Start
        result = LeagueService(schedule_tz=timezone.utc, rng=rng).start_league(
            conn, league.id, now=datetime.now(timezone.utc)
        )
        print(f"Started: {result.total_teams} teams, {result.total_matches} matches")

        # 4. Play the first evening
        match_repo = LeagueMatchRepository()
        for m in match_repo.list_by_league(conn, league.id)[:4]:
            home, away = rng.randint(0, 4), rng.randint(0, 4)
            status = ResultStatus.DRAW if home == away else (ResultStatus.HOME_WIN if home > away else ResultStatus.AWAY_WIN)
            winner = None if home == away else (m.home_team_id if home > away else m.away_team_id)
            match_repo.save_result(conn, m.id, home, away, status.value, winner)
            match_repo.update_status(conn, m.id, MatchStatus.FINISHED.value)
            print(f"  Round {m.round}: {m.home_team_id} {home}-{away} {m.away_team_id}")

        # 5. Table
        print("\nStandings:")
        for row in league_table(conn, league.id):
            print(
                f"  {row['rank']}. {row['teamName']:<24} P{row['matchesPlayed']} "
                f"W{row['wins']} D{row['draws']} L{row['losses']} GD{row['goalDiff']:+d} Pts{row['points']}"
            )

        print("\nLeague slice complete.")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
