"""
League enrollment invoice codec.

Invoice numbers are the join key between the payment service and a pending team
enrollment. Wire format:

    LEAGUE-<leagueId>-<gangCode>-<suffix>

The prefix is matched case-insensitively. The gang code is captured greedily, so it
may itself contain dashes ("LEAGUE-3-red-dragons-1712000000000" -> "red-dragons").
The numeric suffix only makes invoice numbers unique and is not interpreted.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass

from league_backend.models import PaymentStatus

_INVOICE_RE = re.compile(r"^LEAGUE-(\d+)-(.+)-(\d+)$", re.IGNORECASE | re.ASCII)

_PAID = {"SUCCESS", "PAID"}
_PROVIDER_STATUS_MAP: dict[str, PaymentStatus] = {
    "SUCCESS": PaymentStatus.PAID,
    "PAID": PaymentStatus.PAID,
    "FAILED": PaymentStatus.FAILED,
    "FAIL": PaymentStatus.FAILED,
    "EXPIRED": PaymentStatus.EXPIRED,
    "TIMEOUT": PaymentStatus.EXPIRED,
    "CANCELED": PaymentStatus.CANCELED,
    "CANCELLED": PaymentStatus.CANCELED,
    "VOID": PaymentStatus.CANCELED,
}


@dataclass(frozen=True)
class LeagueInvoice:
    league_id: int
    gang_code: str


def parse_league_invoice(invoice_number: str | None) -> LeagueInvoice | None:
    """Decode an invoice number. Returns None for anything malformed; never raises."""
    if not isinstance(invoice_number, str):
        return None
    match = _INVOICE_RE.match(invoice_number.strip())
    if match is None:
        return None
    league_id = int(match.group(1))
    gang_code = match.group(2).strip().lower()
    if league_id < 1 or not gang_code:
        return None
    return LeagueInvoice(league_id=league_id, gang_code=gang_code)


def build_league_invoice(league_id: int, gang_code: str, suffix: int | None = None) -> str:
    """Encode an invoice number. suffix defaults to the current epoch milliseconds."""
    if league_id < 1:
        raise ValueError(f"league_id must be positive, got {league_id}")
    code = gang_code.strip().lower()
    if not code:
        raise ValueError("gang_code must be non-empty")
    if suffix is None:
        suffix = int(time.time() * 1000)
    return f"LEAGUE-{league_id}-{code}-{suffix}"


def is_paid_status(status: str | None) -> bool:
    """Upstream reports a settled payment as SUCCESS or PAID."""
    if not status:
        return False
    return status.strip().upper() in _PAID


def map_provider_status(status: str | None) -> PaymentStatus:
    """Map the payment service's status vocabulary onto the local payment status."""
    if not status:
        return PaymentStatus.PENDING
    return _PROVIDER_STATUS_MAP.get(status.strip().upper(), PaymentStatus.PENDING)
