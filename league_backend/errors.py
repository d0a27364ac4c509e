"""
Exception hierarchy for the league engine.

Every error carries a stable, user-facing ``reason`` and the HTTP status the API
answers with. Upstream and invariant failures keep their detail for logs only.
"""
from __future__ import annotations

from typing import Any


class LeagueEngineError(Exception):
    """Base exception for all league engine errors."""

    status_code = 500

    def __init__(self, reason: str, **context: Any) -> None:
        self.reason = reason
        self.context = context
        super().__init__(reason)


class ValidationError(LeagueEngineError):
    """Malformed id or payload, or a precondition on the input data (e.g. too few teams)."""

    status_code = 400


class NotFoundError(LeagueEngineError):
    """League, team, match or payment does not exist."""

    status_code = 404


class ConflictError(LeagueEngineError):
    """Request conflicts with current state (duplicate start, fixtures already generated)."""

    status_code = 409


class LeagueTransitionError(ConflictError):
    """Invalid league status transition (e.g. finished -> active)."""


class UpstreamError(LeagueEngineError):
    """External payment service unreachable or answered with an error."""

    status_code = 502
    public_reason = "Payment service is unavailable."


class InvariantViolation(LeagueEngineError):
    """Unexpected storage-layer failure. Never reported to callers in detail."""

    status_code = 500
    public_reason = "Internal server error"


def public_message(exc: LeagueEngineError) -> str:
    """Message safe to show to the caller."""
    return getattr(exc, "public_reason", None) or exc.reason
