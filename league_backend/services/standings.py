"""
Standings: replay a team's finished matches into a win/draw/loss table row.

Pure functions over LeagueMatch objects (with their results attached). Nothing is
cached; standings are recomputed from persisted matches every time.
Points: win 3, draw 1, loss 0.
"""
from __future__ import annotations

from typing import Iterable

from league_backend.models import LeagueMatch, ResultStatus, Standing

POINTS_WIN = 3
POINTS_DRAW = 1

# Both spellings occur in result data; either one excludes the match.
_CANCELLED_RESULTS = {ResultStatus.CANCELLED.value, ResultStatus.CANCELED.value}


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def compute_standing(team_id: int, matches: Iterable[LeagueMatch]) -> Standing:
    """
    Standing of team_id over `matches`. Counts only finished matches that have a
    non-cancelled result and involve the team.
    """
    standing = Standing()
    for match in matches:
        result = match.result
        if result is None:
            continue
        if _norm(match.status) != "finished":
            continue

        is_home = match.home_team_id == team_id
        is_away = match.away_team_id == team_id
        if not is_home and not is_away:
            continue

        result_status = _norm(result.result_status)
        if result_status in _CANCELLED_RESULTS:
            continue

        standing.matches_played += 1
        standing.goals_for += result.home_score if is_home else result.away_score
        standing.goals_against += result.away_score if is_home else result.home_score

        if result_status == ResultStatus.DRAW.value:
            standing.draws += 1
            standing.points += POINTS_DRAW
            continue

        did_win = (
            result.winner_team_id == team_id
            or (result_status == ResultStatus.HOME_WIN.value and is_home)
            or (result_status == ResultStatus.AWAY_WIN.value and is_away)
        )
        if did_win:
            standing.wins += 1
            standing.points += POINTS_WIN
        else:
            standing.losses += 1

    standing.goal_diff = standing.goals_for - standing.goals_against
    return standing


def rank_key(team_id: int, standing: Standing) -> tuple[int, int, int, int]:
    """Sort key for a league table: points, goal difference, goals for (all desc), then id."""
    return (-standing.points, -standing.goal_diff, -standing.goals_for, team_id)


def rank_standings(rows: Iterable[tuple[int, Standing]]) -> list[tuple[int, Standing]]:
    """Order (team_id, standing) pairs into a league table."""
    return sorted(rows, key=lambda row: rank_key(row[0], row[1]))
