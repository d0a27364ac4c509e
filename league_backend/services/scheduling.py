"""
Double round-robin fixture generation and calendar slotting for leagues.

Every pair of teams meets twice, once with each side at home, so N teams produce
N*(N-1) fixtures. The fixture list is shuffled uniformly (Fisher-Yates) to avoid
predictable adjacency and then numbered round 1..N*(N-1) in shuffled order.

Slots: four per evening at 18:00, 20:00, 22:00 and 00:00 of the following calendar
day (the evening effectively runs until 02:00). Fixture idx goes to evening
idx // 4, slot idx % 4. Evening 0 is the calendar day after the league starts.
"""
from __future__ import annotations

import random
from datetime import date, datetime, time, timedelta, tzinfo
from typing import MutableSequence, Sequence, TypeVar

from league_backend.models import FixtureDraft

SLOTS_PER_WINDOW = 4
FIRST_SLOT_HOUR = 18
SLOT_SPACING_HOURS = 2

T = TypeVar("T")


def double_round_robin_pairings(team_ids: Sequence[int]) -> list[tuple[int, int]]:
    """
    (home_team_id, away_team_id) for every ordered pair of distinct teams.
    For i before j in team_ids: (i, j) then (j, i). Deterministic.
    """
    ids = list(team_ids)
    if len(set(ids)) != len(ids):
        raise ValueError("team_ids must be unique")
    pairings: list[tuple[int, int]] = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            pairings.append((ids[i], ids[j]))
            pairings.append((ids[j], ids[i]))
    return pairings


def shuffle_in_place(items: MutableSequence[T], rng: random.Random) -> MutableSequence[T]:
    """Fisher-Yates: every permutation equally likely given a uniform rng."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def first_window_date(now: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of evening 0: the day after `now` in the scheduling timezone."""
    local_now = now.astimezone(tz) if tz is not None else now
    return local_now.date() + timedelta(days=1)


def build_scheduled_at(base_date: date, index: int, tz: tzinfo | None = None) -> datetime:
    """Kickoff for the fixture at position `index` (0-based, post-shuffle)."""
    if index < 0:
        raise ValueError(f"index must be >= 0, got {index}")
    window_index, slot_index = divmod(index, SLOTS_PER_WINDOW)
    session_date = base_date + timedelta(days=window_index)
    if slot_index == SLOTS_PER_WINDOW - 1:
        # Last slot is midnight, i.e. 00:00 of the next calendar day
        return datetime.combine(session_date + timedelta(days=1), time(0, 0), tzinfo=tz)
    slot_hour = FIRST_SLOT_HOUR + slot_index * SLOT_SPACING_HOURS
    return datetime.combine(session_date, time(slot_hour, 0), tzinfo=tz)


def generate_league_schedule(
    team_ids: Sequence[int],
    now: datetime,
    rng: random.Random | None = None,
    tz: tzinfo | None = None,
) -> list[FixtureDraft]:
    """
    Full schedule for a league: shuffled double round-robin with rounds 1..n and
    kickoff times starting the evening after `now`.
    """
    rng = rng or random.SystemRandom()
    pairings = double_round_robin_pairings(team_ids)
    shuffle_in_place(pairings, rng)
    base = first_window_date(now, tz)
    return [
        FixtureDraft(
            home_team_id=home,
            away_team_id=away,
            round=idx + 1,
            scheduled_at=build_scheduled_at(base, idx, tz),
        )
        for idx, (home, away) in enumerate(pairings)
    ]
