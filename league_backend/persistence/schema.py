"""
SQLite schema for league entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def leagues_schema() -> str:
    """Competition container. status: upcoming | active | finished."""
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'upcoming',
        start_at TEXT,
        end_at TEXT,
        price INTEGER NOT NULL DEFAULT 0 CHECK (price >= 0),
        max_team INTEGER NOT NULL DEFAULT 0 CHECK (max_team >= 0),
        min_player INTEGER NOT NULL DEFAULT 0 CHECK (min_player >= 0),
        rules_json TEXT,
        creator TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_leagues_status ON leagues(status);
    """


def gangs_schema() -> str:
    """Display labels for gang codes. Maintained outside this service."""
    return """
    CREATE TABLE IF NOT EXISTS gangs (
        name TEXT PRIMARY KEY,
        label TEXT
    );
    """


def league_teams_schema() -> str:
    """League entrants. One row per (league_id, code); enrollment relies on this constraint."""
    return """
    CREATE TABLE IF NOT EXISTS league_teams (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        league_id INTEGER NOT NULL,
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        joined_at TEXT,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_league_teams_league_code ON league_teams(league_id, code);
    CREATE INDEX IF NOT EXISTS ix_league_teams_code ON league_teams(code);
    """


def league_matches_schema() -> str:
    """Fixtures. Created in bulk when a league starts."""
    return """
    CREATE TABLE IF NOT EXISTS league_matches (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        league_id INTEGER NOT NULL,
        home_team_id INTEGER NOT NULL,
        away_team_id INTEGER NOT NULL,
        round INTEGER NOT NULL,
        stage TEXT NOT NULL DEFAULT 'regular',
        zone TEXT,
        scheduled_at TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        created_at TEXT NOT NULL,
        CHECK (home_team_id <> away_team_id),
        FOREIGN KEY (league_id) REFERENCES leagues(id),
        FOREIGN KEY (home_team_id) REFERENCES league_teams(id),
        FOREIGN KEY (away_team_id) REFERENCES league_teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_league_matches_league ON league_matches(league_id);
    CREATE INDEX IF NOT EXISTS ix_league_matches_home ON league_matches(home_team_id);
    CREATE INDEX IF NOT EXISTS ix_league_matches_away ON league_matches(away_team_id);
    CREATE INDEX IF NOT EXISTS ix_league_matches_scheduled ON league_matches(scheduled_at);
    """


def league_match_results_schema() -> str:
    """1:1 with league_matches. Written by the game-server integration."""
    return """
    CREATE TABLE IF NOT EXISTS league_match_results (
        match_id INTEGER PRIMARY KEY,
        home_score INTEGER NOT NULL DEFAULT 0,
        away_score INTEGER NOT NULL DEFAULT 0,
        result_status TEXT NOT NULL,
        winner_team_id INTEGER,
        FOREIGN KEY (match_id) REFERENCES league_matches(id),
        FOREIGN KEY (winner_team_id) REFERENCES league_teams(id)
    );
    """


def league_match_roster_players_schema() -> str:
    """Players fielded per match and team. Written by the game-server integration."""
    return """
    CREATE TABLE IF NOT EXISTS league_match_roster_players (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        match_id INTEGER NOT NULL,
        team_id INTEGER NOT NULL,
        citizen_id TEXT NOT NULL,
        player_name TEXT,
        character_name TEXT,
        FOREIGN KEY (match_id) REFERENCES league_matches(id),
        FOREIGN KEY (team_id) REFERENCES league_teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_roster_match ON league_match_roster_players(match_id);
    """


def payments_schema() -> str:
    """Local audit record per invoice. status: pending | paid | failed | expired | canceled."""
    return """
    CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_number TEXT NOT NULL UNIQUE,
        purpose_type TEXT NOT NULL,
        purpose_ref TEXT,
        amount INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'pending',
        channel TEXT,
        metadata_json TEXT,
        provider_payload_json TEXT,
        paid_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order follows foreign keys."""
    return "\n".join([
        leagues_schema(),
        gangs_schema(),
        league_teams_schema(),
        league_matches_schema(),
        league_match_results_schema(),
        league_match_roster_players_schema(),
        payments_schema(),
    ])
