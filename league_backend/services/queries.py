"""
Read-side views for the league API: a gang's league entries with standings, league
tables, schedules and the admin league listing.

Everything is computed from persisted rows on each call; the views are paginated in
memory after filtering.
"""
from __future__ import annotations

import math
import sqlite3
from collections import defaultdict
from typing import Any, Sequence, TypeVar

from league_backend.models import LeagueMatch, LeagueStatus, MatchStatus, Team
from league_backend.persistence.repositories import (
    LeagueMatchRepository,
    LeagueRepository,
    TeamRepository,
)
from league_backend.services.standings import compute_standing, rank_standings

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


def _to_positive_int(value: Any, fallback: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return fallback
    return n if n >= 1 else fallback


def paginate(items: Sequence[T], page: Any = 1, limit: Any = DEFAULT_PAGE_LIMIT) -> tuple[list[T], dict[str, int]]:
    """
    Slice one page out of items. page falls back to 1, limit to 10 (capped at 100);
    a page past the end is clamped to the last page.
    """
    size = min(_to_positive_int(limit, DEFAULT_PAGE_LIMIT), MAX_PAGE_LIMIT)
    total = len(items)
    total_pages = max(1, math.ceil(total / size))
    current = min(_to_positive_int(page, 1), total_pages)
    start = (current - 1) * size
    return list(items[start:start + size]), {
        "page": current,
        "limit": size,
        "total": total,
        "totalPages": total_pages,
    }


def _matches(text: str, *fields: Any) -> bool:
    needle = text.strip().lower()
    if not needle:
        return True
    return any(needle in str(f).lower() for f in fields if f is not None)


def _team_ref(team: Team | None, team_id: int) -> dict[str, Any]:
    if team is None:
        return {"id": team_id, "code": None, "name": f"Team #{team_id}"}
    return {"id": team.id, "code": team.code, "name": team.name}


# ---------- Standings views ----------


def league_status_items(
    conn: sqlite3.Connection,
    gang_code: str,
    query: str = "",
    status: str | None = None,
    page: Any = 1,
    limit: Any = DEFAULT_PAGE_LIMIT,
) -> dict[str, Any]:
    """The gang's entries across leagues, each with its standing in that league."""
    league_repo = LeagueRepository()
    team_repo = TeamRepository()
    match_repo = LeagueMatchRepository()

    teams = team_repo.list_by_code(conn, gang_code)
    league_ids = {t.league_id for t in teams}
    leagues = league_repo.get_many(conn, league_ids)
    team_counts = team_repo.count_by_league(conn, league_ids)
    matches_by_league: dict[int, list[LeagueMatch]] = defaultdict(list)
    for m in match_repo.list_by_leagues(conn, league_ids):
        matches_by_league[m.league_id].append(m)

    items: list[dict[str, Any]] = []
    for team in teams:
        league = leagues.get(team.league_id)
        if league is None:
            continue
        if status and league.status != status:
            continue
        if not _matches(query, league.name, team.code, team.name):
            continue
        standing = compute_standing(team.id, matches_by_league[league.id])
        items.append({
            "leagueId": league.id,
            "leagueName": league.name,
            "leagueStatus": league.status,
            "teamId": team.id,
            "teamCode": team.code,
            "teamName": team.name,
            "teamStatus": team.status,
            "joinedAt": team.joined_at.isoformat() if team.joined_at else None,
            "totalTeams": team_counts.get(league.id, 0),
            "standing": standing.to_dict(),
        })

    summary = {
        "totalLeagues": len(items),
        "totalPoints": sum(i["standing"]["points"] for i in items),
        "totalPlayed": sum(i["standing"]["matchesPlayed"] for i in items),
        "activeLeagues": sum(1 for i in items if i["leagueStatus"] == LeagueStatus.ACTIVE.value),
    }
    page_items, pagination = paginate(items, page, limit)
    return {"items": page_items, "pagination": pagination, "summary": summary}


def league_table(conn: sqlite3.Connection, league_id: int) -> list[dict[str, Any]]:
    """Every team of the league with its standing, best first."""
    teams = TeamRepository().list_by_league(conn, league_id)
    matches = LeagueMatchRepository().list_by_league(conn, league_id)
    by_id = {t.id: t for t in teams}
    ranked = rank_standings((t.id, compute_standing(t.id, matches)) for t in teams)
    return [
        {
            "rank": position,
            "teamId": team_id,
            "teamCode": by_id[team_id].code,
            "teamName": by_id[team_id].name,
            **standing.to_dict(),
        }
        for position, (team_id, standing) in enumerate(ranked, start=1)
    ]


# ---------- Schedule view ----------


def schedule_items(
    conn: sqlite3.Connection,
    gang_code: str | None = None,
    query: str = "",
    status: str | None = None,
    page: Any = 1,
    limit: Any = DEFAULT_PAGE_LIMIT,
) -> dict[str, Any]:
    """
    Matches ordered by kickoff then id. With gang_code, only the gang's matches, each
    annotated with which side the gang plays. Summary counts are taken after the text
    filter and before the status filter.
    """
    league_repo = LeagueRepository()
    team_repo = TeamRepository()
    match_repo = LeagueMatchRepository()

    my_team_ids: set[int] = set()
    if gang_code is not None:
        my_team_ids = {t.id for t in team_repo.list_by_code(conn, gang_code)}
        matches = match_repo.list_by_teams(conn, my_team_ids)
    else:
        matches = match_repo.list_all(conn)

    leagues = league_repo.get_many(conn, {m.league_id for m in matches})
    teams = team_repo.get_many(conn, {tid for m in matches for tid in (m.home_team_id, m.away_team_id)})

    searched: list[tuple[LeagueMatch, dict[str, Any]]] = []
    for m in matches:
        league = leagues.get(m.league_id)
        home = _team_ref(teams.get(m.home_team_id), m.home_team_id)
        away = _team_ref(teams.get(m.away_team_id), m.away_team_id)
        if not _matches(
            query,
            league.name if league else None,
            home["name"], home["code"], away["name"], away["code"],
            m.stage, m.zone,
        ):
            continue
        item: dict[str, Any] = {
            "matchId": m.id,
            "leagueId": m.league_id,
            "leagueName": league.name if league else None,
            "leagueStatus": league.status if league else None,
            "round": m.round,
            "stage": m.stage,
            "zone": m.zone,
            "scheduledAt": m.scheduled_at.isoformat() if m.scheduled_at else None,
            "matchStatus": m.status,
            "homeTeam": home,
            "awayTeam": away,
            "result": m.result.to_dict() if m.result else None,
        }
        if gang_code is not None:
            my_side = "home" if m.home_team_id in my_team_ids else "away"
            item["myTeamId"] = m.home_team_id if my_side == "home" else m.away_team_id
            item["mySide"] = my_side
            item["opponentTeam"] = away if my_side == "home" else home
        searched.append((m, item))

    summary: dict[str, int] = {"total": len(searched)}
    for s in MatchStatus:
        summary[s.value] = sum(1 for m, _ in searched if m.status == s.value)

    filtered = [item for m, item in searched if not status or m.status == status]
    page_items, pagination = paginate(filtered, page, limit)

    rosters: dict[tuple[int, int], list[dict[str, Any]]] = defaultdict(list)
    for p in match_repo.list_rosters(conn, [i["matchId"] for i in page_items]):
        rosters[(p.match_id, p.team_id)].append(p.to_dict())
    for i in page_items:
        i["rosters"] = {
            "home": rosters[(i["matchId"], i["homeTeam"]["id"])],
            "away": rosters[(i["matchId"], i["awayTeam"]["id"])],
        }

    return {"items": page_items, "pagination": pagination, "summary": summary}


# ---------- League listings ----------


def list_leagues(
    conn: sqlite3.Connection,
    query: str = "",
    status: str | None = None,
    page: Any = 1,
    limit: Any = DEFAULT_PAGE_LIMIT,
) -> dict[str, Any]:
    """Admin listing, newest first, with team and match counts."""
    _, leagues = LeagueRepository().search(conn, query=query.strip(), status=status or None, limit=-1)
    page_items, pagination = paginate(leagues, page, limit)
    ids = [l.id for l in page_items]
    team_counts = TeamRepository().count_by_league(conn, ids)
    match_counts = LeagueMatchRepository().count_by_leagues(conn, ids)
    return {
        "items": [
            {**l.to_dict(), "totalTeams": team_counts.get(l.id, 0), "totalMatches": match_counts.get(l.id, 0)}
            for l in page_items
        ],
        "pagination": pagination,
    }


def joinable_leagues(conn: sqlite3.Connection, gang_code: str) -> list[dict[str, Any]]:
    """Upcoming leagues with whether the gang already holds a team in each."""
    leagues = LeagueRepository().list_by_status(conn, LeagueStatus.UPCOMING.value)
    team_repo = TeamRepository()
    ids = [l.id for l in leagues]
    joined = team_repo.joined_league_ids(conn, gang_code, ids)
    team_counts = team_repo.count_by_league(conn, ids)
    return [
        {**l.to_dict(), "totalTeams": team_counts.get(l.id, 0), "alreadyJoined": l.id in joined}
        for l in leagues
    ]
