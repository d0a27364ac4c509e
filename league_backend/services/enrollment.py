"""
Payment-gated league enrollment.

A gang joins a league by paying an invoice (see services.invoice). Once the payment
service reports the invoice as paid, insert_team_from_invoice admits the gang as a
league team. The operation is idempotent: the (league_id, code) uniqueness
constraint decides whether a row is written, so duplicate or concurrent
notifications for the same invoice admit the team exactly once.

Three paths reach it (webhook push, user verify poll, browser completion redirect);
all of them live in the API layer and share the functions here.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from league_backend.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from league_backend.models import LEAGUE_JOIN_PURPOSE_TYPE, PaymentStatus, TeamStatus
from league_backend.persistence.repositories import (
    GangRepository,
    LeagueRepository,
    PaymentRepository,
    TeamRepository,
)
from league_backend.schemas import EnrollmentMetadata, dump_enrollment_metadata, load_enrollment_metadata
from league_backend.services.invoice import (
    LeagueInvoice,
    build_league_invoice,
    map_provider_status,
    parse_league_invoice,
)
from league_backend.services.league_service import LeagueService
from league_backend.services.payment_client import (
    PaymentServiceClient,
    extract_checkout_url,
    extract_payment_channel,
)

logger = logging.getLogger(__name__)

REASON_INVALID_INVOICE = "invalid_invoice"
REASON_LEAGUE_NOT_FOUND = "league_not_found"
REASON_OTHER = "other"
REASON_PAYMENT_NOT_FOUND = "payment_not_found"
REASON_INVALID_PURPOSE = "invalid_purpose"


@dataclass(frozen=True)
class ReconcileResult:
    ok: bool
    inserted: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    reason: str | None = None
    status: str | None = None
    paid: bool = False


@dataclass(frozen=True)
class JoinRequester:
    """The authenticated gang boss asking to join a league."""
    account_id: str
    gang_code: str
    gang_label: str
    username: str | None = None
    email: str | None = None


class EnrollmentService:
    """Invoice-driven team admission and the local payment audit trail."""

    def __init__(self) -> None:
        self._league_repo = LeagueRepository()
        self._gang_repo = GangRepository()
        self._team_repo = TeamRepository()
        self._payment_repo = PaymentRepository()
        self._league_service = LeagueService()

    # ---------- Reconciliation ----------

    def insert_team_from_invoice(
        self, conn: sqlite3.Connection, invoice_number: str, now: datetime | None = None
    ) -> ReconcileResult:
        """
        Admit the gang named by a paid invoice into its league.
        ok=True, inserted=False means the team was already enrolled.
        """
        parsed = parse_league_invoice(invoice_number)
        if parsed is None:
            return ReconcileResult(ok=False, reason=REASON_INVALID_INVOICE)

        try:
            league = self._league_repo.get(conn, parsed.league_id)
            if league is None:
                return ReconcileResult(ok=False, reason=REASON_LEAGUE_NOT_FOUND)
            name = (
                self._checkout_gang_name(conn, invoice_number, parsed)
                or self._gang_repo.get_label(conn, parsed.gang_code)
                or parsed.gang_code.upper()
            )
            inserted = self._team_repo.insert_if_absent(
                conn,
                league_id=league.id,
                code=parsed.gang_code,
                name=name,
                status=TeamStatus.ACTIVE.value,
                joined_at=now or datetime.now(timezone.utc),
            )
        except sqlite3.Error:
            logger.exception(
                "League team insert failed",
                extra={"invoice_number": invoice_number, "league_id": parsed.league_id},
            )
            return ReconcileResult(ok=False, reason=REASON_OTHER)

        if inserted:
            logger.info(
                "League team enrolled",
                extra={"invoice_number": invoice_number, "league_id": league.id, "gang_code": parsed.gang_code},
            )
        return ReconcileResult(ok=True, inserted=inserted)

    def _checkout_gang_name(
        self, conn: sqlite3.Connection, invoice_number: str, parsed: LeagueInvoice
    ) -> str | None:
        """Team name recorded at checkout, if this invoice went through checkout."""
        payment = self._payment_repo.get_by_invoice(conn, invoice_number)
        if payment is None or payment.purpose_type != LEAGUE_JOIN_PURPOSE_TYPE:
            return None
        try:
            metadata = load_enrollment_metadata(payment.metadata_json)
        except ValidationError:
            logger.warning("Unreadable enrollment metadata", extra={"invoice_number": invoice_number})
            return None
        if metadata is None:
            return None
        if metadata.league_id != parsed.league_id or metadata.gang_code != parsed.gang_code:
            logger.warning("Enrollment metadata does not match invoice", extra={"invoice_number": invoice_number})
            return None
        return (metadata.gang_name or "").strip() or None

    # ---------- Payment audit ----------

    def sync_payment_status(
        self,
        conn: sqlite3.Connection,
        invoice_number: str,
        provider_status: str | None,
        provider_payload: Any = None,
    ) -> SyncResult:
        """
        Record the payment service's view of an invoice on the local payment row.
        A row already marked paid is never downgraded by a late or stale report, and a
        report without a status (the lookup itself failed) leaves the row unchanged.
        """
        payment = self._payment_repo.get_by_invoice(conn, invoice_number)
        if payment is None:
            return SyncResult(ok=False, reason=REASON_PAYMENT_NOT_FOUND)
        if payment.purpose_type != LEAGUE_JOIN_PURPOSE_TYPE:
            return SyncResult(ok=False, reason=REASON_INVALID_PURPOSE)
        if not (provider_status or "").strip():
            return SyncResult(
                ok=True, status=payment.status, paid=payment.status == PaymentStatus.PAID.value
            )

        next_status = map_provider_status(provider_status)
        if payment.status == PaymentStatus.PAID.value and next_status != PaymentStatus.PAID:
            logger.info(
                "Ignoring %s report for paid invoice",
                next_status.value,
                extra={"invoice_number": invoice_number},
            )
            return SyncResult(ok=True, status=PaymentStatus.PAID.value, paid=True)

        paid = next_status == PaymentStatus.PAID
        self._payment_repo.update_status(
            conn,
            payment.id,
            next_status.value,
            provider_payload_json=json.dumps(provider_payload, default=str) if provider_payload is not None else None,
            channel=extract_payment_channel(provider_payload),
            paid_at=datetime.now(timezone.utc) if paid and payment.paid_at is None else None,
        )
        return SyncResult(ok=True, status=next_status.value, paid=paid)

    # ---------- Checkout ----------

    def create_join_checkout(
        self,
        conn: sqlite3.Connection,
        client: PaymentServiceClient,
        league_id: int,
        requester: JoinRequester,
        return_url_template: str,
        currency: str = "IDR",
        due_minutes: int = 60,
    ) -> dict[str, Any]:
        """
        Open a payment for a gang to join an upcoming league.
        return_url_template receives the invoice number via str.format(invoice_number=...).
        """
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError("League not found.", league_id=league_id)
        if not self._league_service.can_enroll(conn, league.id):
            raise ValidationError("Selected league is not open for joining.", league_id=league_id)
        gang_code = requester.gang_code.strip().lower()
        if self._team_repo.get_by_league_and_code(conn, league.id, gang_code) is not None:
            raise ConflictError("Your team has already joined this league.", league_id=league_id)

        invoice_number = build_league_invoice(league.id, gang_code)
        metadata = EnrollmentMetadata(
            league_id=league.id,
            league_name=league.name,
            gang_code=gang_code,
            gang_name=requester.gang_label,
        )
        payment = self._payment_repo.create(
            conn,
            invoice_number=invoice_number,
            purpose_type=LEAGUE_JOIN_PURPOSE_TYPE,
            purpose_ref=f"{league.id}:{gang_code}",
            amount=league.price,
            metadata_json=dump_enrollment_metadata(metadata),
        )

        return_url = return_url_template.format(invoice_number=quote(invoice_number, safe=""))
        customer: dict[str, Any] = {
            "id": f"ACC-{requester.account_id}",
            "name": requester.username or requester.gang_label or f"ACC-{requester.account_id}",
        }
        if requester.email:
            customer["email"] = requester.email
        payload = {
            "return_url": return_url,
            "order": {
                "amount": league.price,
                "invoice_number": invoice_number,
                "currency": currency,
                "callback_url": return_url,
            },
            "payment": {"payment_due_date": due_minutes},
            "customer": customer,
            "metadata": {
                "type": LEAGUE_JOIN_PURPOSE_TYPE,
                "league_id": league.id,
                "league_name": league.name,
                "gang_code": gang_code,
                "gang_name": requester.gang_label,
            },
        }
        try:
            upstream = client.create_payment(payload)
        except UpstreamError:
            self._payment_repo.update_status(conn, payment.id, PaymentStatus.FAILED.value)
            logger.exception(
                "League join checkout failed upstream",
                extra={"invoice_number": invoice_number, "league_id": league.id},
            )
            raise

        return {
            "message": "League join payment created successfully.",
            "invoiceNumber": invoice_number,
            "checkoutUrl": extract_checkout_url(upstream),
            "league": {"id": league.id, "name": league.name, "price": league.price},
        }
