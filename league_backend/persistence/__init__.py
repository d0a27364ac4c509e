"""
Persistence layer for league data.
No business logic; only read/write interfaces.
"""
from .db import get_connection, init_db, transaction
from .repositories import (
    LeagueRepository,
    GangRepository,
    TeamRepository,
    LeagueMatchRepository,
    PaymentRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "transaction",
    "LeagueRepository",
    "GangRepository",
    "TeamRepository",
    "LeagueMatchRepository",
    "PaymentRepository",
]
