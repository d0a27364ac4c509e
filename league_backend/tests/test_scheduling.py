"""
Tests for double round-robin fixture generation and slotting.
"""
from __future__ import annotations

import random
from collections import Counter
from datetime import date, datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from league_backend.services.scheduling import (
    build_scheduled_at,
    double_round_robin_pairings,
    first_window_date,
    generate_league_schedule,
    shuffle_in_place,
)

NOW = datetime(2025, 3, 10, 15, 30, tzinfo=timezone.utc)


def test_pairings_two_teams():
    assert double_round_robin_pairings([1, 2]) == [(1, 2), (2, 1)]


@pytest.mark.parametrize("n", [2, 3, 4, 5, 8])
def test_pairings_every_ordered_pair_once(n):
    ids = list(range(10, 10 + n))
    pairings = double_round_robin_pairings(ids)
    assert len(pairings) == n * (n - 1)
    assert len(set(pairings)) == len(pairings)
    assert all(h != a for h, a in pairings)
    # each unordered pair appears twice, once per home side
    unordered = Counter(frozenset(p) for p in pairings)
    assert set(unordered.values()) == {2}


def test_pairings_fewer_than_two_teams():
    assert double_round_robin_pairings([]) == []
    assert double_round_robin_pairings([7]) == []


def test_pairings_reject_duplicate_ids():
    with pytest.raises(ValueError):
        double_round_robin_pairings([1, 2, 1])


def test_shuffle_is_a_permutation():
    items = list(range(20))
    shuffle_in_place(items, random.Random(3))
    assert sorted(items) == list(range(20))


def test_shuffle_is_deterministic_for_seed():
    a, b = list(range(12)), list(range(12))
    shuffle_in_place(a, random.Random(99))
    shuffle_in_place(b, random.Random(99))
    assert a == b


def test_shuffle_reaches_every_permutation_of_three():
    rng = random.Random(1)
    seen = {tuple(shuffle_in_place([1, 2, 3], rng)) for _ in range(600)}
    assert len(seen) == 6


def test_first_window_is_next_calendar_day():
    assert first_window_date(NOW) == date(2025, 3, 11)


def test_first_window_uses_schedule_timezone():
    # 20:00 UTC on the 10th is already the 11th in Jakarta
    late = datetime(2025, 3, 10, 20, 0, tzinfo=timezone.utc)
    assert first_window_date(late, ZoneInfo("Asia/Jakarta")) == date(2025, 3, 12)


def test_slots_within_one_evening():
    base = date(2025, 3, 11)
    assert build_scheduled_at(base, 0) == datetime(2025, 3, 11, 18, 0)
    assert build_scheduled_at(base, 1) == datetime(2025, 3, 11, 20, 0)
    assert build_scheduled_at(base, 2) == datetime(2025, 3, 11, 22, 0)
    # last slot rolls over to midnight of the next calendar day
    assert build_scheduled_at(base, 3) == datetime(2025, 3, 12, 0, 0)


def test_fifth_fixture_starts_next_evening():
    assert build_scheduled_at(date(2025, 3, 11), 4) == datetime(2025, 3, 12, 18, 0)


def test_slot_carries_timezone():
    tz = ZoneInfo("Asia/Jakarta")
    kickoff = build_scheduled_at(date(2025, 3, 11), 0, tz)
    assert kickoff.tzinfo is tz
    assert kickoff.hour == 18


def test_negative_index_rejected():
    with pytest.raises(ValueError):
        build_scheduled_at(date(2025, 3, 11), -1)


def test_generate_schedule_four_teams():
    fixtures = generate_league_schedule([1, 2, 3, 4], NOW, rng=random.Random(7), tz=timezone.utc)
    assert len(fixtures) == 12
    assert [f.round for f in fixtures] == list(range(1, 13))
    assert {(f.home_team_id, f.away_team_id) for f in fixtures} == set(double_round_robin_pairings([1, 2, 3, 4]))
    kickoffs = [f.scheduled_at for f in fixtures]
    assert kickoffs == sorted(kickoffs)
    assert kickoffs[0] == datetime(2025, 3, 11, 18, 0, tzinfo=timezone.utc)
    assert kickoffs[-1] == datetime(2025, 3, 14, 0, 0, tzinfo=timezone.utc)
    assert all(f.status == "scheduled" and f.stage == "regular" for f in fixtures)


def test_generate_schedule_is_reproducible_with_seeded_rng():
    a = generate_league_schedule([5, 6, 7], NOW, rng=random.Random(11))
    b = generate_league_schedule([5, 6, 7], NOW, rng=random.Random(11))
    assert [(f.home_team_id, f.away_team_id) for f in a] == [(f.home_team_id, f.away_team_id) for f in b]


def test_generate_schedule_default_rng():
    fixtures = generate_league_schedule([1, 2, 3], NOW)
    assert len(fixtures) == 6
