"""
Tests for invoice-driven enrollment: idempotent team insert, payment sync, checkout.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from league_backend.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from league_backend.models import LEAGUE_JOIN_PURPOSE_TYPE
from league_backend.persistence.db import get_connection, init_db
from league_backend.persistence.repositories import (
    GangRepository,
    LeagueRepository,
    PaymentRepository,
    TeamRepository,
)
from league_backend.schemas import load_enrollment_metadata
from league_backend.services.enrollment import EnrollmentService, JoinRequester
from league_backend.services.league_service import LeagueService
from league_backend.services.payment_client import PaymentServiceClient


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "enrollment_test.db"
    init_db(path)
    return path


@pytest.fixture
def db_conn(db_path):
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def service():
    return EnrollmentService()


@pytest.fixture
def league(db_conn):
    return LeagueRepository().create(db_conn, "Summer League", "admin-1", price=75000, max_team=8)


# ---------- insert_team_from_invoice ----------


def test_insert_team_uses_gang_label(db_conn, service, league):
    GangRepository().upsert(db_conn, "ballas", "Ballas Family")
    result = service.insert_team_from_invoice(db_conn, f"LEAGUE-{league.id}-ballas-1700000000000")
    assert result.ok and result.inserted and result.reason is None
    team = TeamRepository().get_by_league_and_code(db_conn, league.id, "ballas")
    assert team.name == "Ballas Family"
    assert team.status == "active"
    assert team.joined_at is not None


def test_insert_team_falls_back_to_upper_code(db_conn, service, league):
    service.insert_team_from_invoice(db_conn, f"LEAGUE-{league.id}-vagos-1")
    assert TeamRepository().get_by_league_and_code(db_conn, league.id, "vagos").name == "VAGOS"


def test_insert_team_is_idempotent(db_conn, service, league):
    invoice = f"LEAGUE-{league.id}-ballas-1"
    first = service.insert_team_from_invoice(db_conn, invoice)
    second = service.insert_team_from_invoice(db_conn, invoice)
    third = service.insert_team_from_invoice(db_conn, f"LEAGUE-{league.id}-BALLAS-2")
    assert (first.ok, first.inserted) == (True, True)
    assert (second.ok, second.inserted) == (True, False)
    assert (third.ok, third.inserted) == (True, False)
    assert len(TeamRepository().list_by_league(db_conn, league.id)) == 1


def test_insert_team_invalid_invoice(db_conn, service):
    result = service.insert_team_from_invoice(db_conn, "not-an-invoice")
    assert (result.ok, result.inserted, result.reason) == (False, False, "invalid_invoice")


def test_insert_team_unknown_league(db_conn, service):
    result = service.insert_team_from_invoice(db_conn, "LEAGUE-999-ballas-1")
    assert (result.ok, result.reason) == (False, "league_not_found")


def test_insert_team_storage_error_is_reported(db_conn, service, league):
    with patch.object(TeamRepository, "insert_if_absent", side_effect=sqlite3.OperationalError("locked")):
        result = service.insert_team_from_invoice(db_conn, f"LEAGUE-{league.id}-ballas-1")
    assert (result.ok, result.reason) == (False, "other")


def test_concurrent_deliveries_insert_once(db_path, db_conn, league):
    invoice = f"LEAGUE-{league.id}-families-1"
    barrier = threading.Barrier(6)
    results = []
    lock = threading.Lock()

    def deliver():
        conn = get_connection(db_path)
        try:
            barrier.wait()
            r = EnrollmentService().insert_team_from_invoice(conn, invoice)
        finally:
            conn.close()
        with lock:
            results.append(r)

    threads = [threading.Thread(target=deliver) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(r.ok for r in results)
    assert sum(r.inserted for r in results) == 1
    assert len(TeamRepository().list_by_league(db_conn, league.id)) == 1


# ---------- sync_payment_status ----------


def _pending_payment(conn, league, invoice, purpose=LEAGUE_JOIN_PURPOSE_TYPE):
    return PaymentRepository().create(conn, invoice, purpose, f"{league.id}:ballas", league.price)


def test_sync_marks_paid_with_channel(db_conn, service, league):
    invoice = f"LEAGUE-{league.id}-ballas-1"
    _pending_payment(db_conn, league, invoice)
    payload = {"transaction": {"status": "SUCCESS"}, "channel": {"id": "QRIS"}}
    result = service.sync_payment_status(db_conn, invoice, "SUCCESS", payload)
    assert (result.ok, result.status, result.paid) == (True, "paid", True)

    stored = PaymentRepository().get_by_invoice(db_conn, invoice)
    assert stored.status == "paid"
    assert stored.channel == "QRIS"
    assert stored.paid_at is not None
    assert json.loads(stored.provider_payload_json) == payload


def test_sync_pending_then_expired(db_conn, service, league):
    invoice = f"LEAGUE-{league.id}-ballas-1"
    _pending_payment(db_conn, league, invoice)
    assert service.sync_payment_status(db_conn, invoice, "WAITING").status == "pending"
    assert service.sync_payment_status(db_conn, invoice, "EXPIRED").status == "expired"
    assert PaymentRepository().get_by_invoice(db_conn, invoice).paid_at is None


def test_sync_never_downgrades_paid(db_conn, service, league):
    invoice = f"LEAGUE-{league.id}-ballas-1"
    _pending_payment(db_conn, league, invoice)
    service.sync_payment_status(db_conn, invoice, "PAID")
    late = service.sync_payment_status(db_conn, invoice, "PENDING")
    assert late.paid is True
    assert PaymentRepository().get_by_invoice(db_conn, invoice).status == "paid"


def test_sync_unknown_payment(db_conn, service):
    result = service.sync_payment_status(db_conn, "LEAGUE-1-ballas-1", "SUCCESS")
    assert (result.ok, result.reason) == (False, "payment_not_found")


def test_sync_wrong_purpose(db_conn, service, league):
    _pending_payment(db_conn, league, "TOPUP-1", purpose="topup")
    result = service.sync_payment_status(db_conn, "TOPUP-1", "SUCCESS")
    assert (result.ok, result.reason) == (False, "invalid_purpose")


def test_sync_without_status_leaves_row_unchanged(db_conn, service, league):
    invoice = f"LEAGUE-{league.id}-ballas-1"
    _pending_payment(db_conn, league, invoice)
    service.sync_payment_status(db_conn, invoice, "EXPIRED")
    result = service.sync_payment_status(db_conn, invoice, None)
    assert (result.ok, result.status, result.paid) == (True, "expired", False)
    assert PaymentRepository().get_by_invoice(db_conn, invoice).status == "expired"


# ---------- create_join_checkout ----------


REQUESTER = JoinRequester(account_id="77", gang_code="Ballas", gang_label="Ballas Family", username="big-smoke")


def _client(response=None, error=None):
    client = MagicMock(spec=PaymentServiceClient)
    if error is not None:
        client.create_payment.side_effect = error
    else:
        client.create_payment.return_value = response or {"url": "https://pay.example/checkout/abc"}
    return client


def test_checkout_records_pending_payment(db_conn, service, league):
    client = _client()
    out = service.create_join_checkout(
        db_conn, client, league.id, REQUESTER, "https://api.example/complete?invoiceNumber={invoice_number}"
    )
    assert out["checkoutUrl"] == "https://pay.example/checkout/abc"
    assert out["league"] == {"id": league.id, "name": "Summer League", "price": 75000}
    invoice = out["invoiceNumber"]
    assert invoice.startswith(f"LEAGUE-{league.id}-ballas-")

    payment = PaymentRepository().get_by_invoice(db_conn, invoice)
    assert payment.status == "pending"
    assert payment.amount == 75000
    metadata = load_enrollment_metadata(payment.metadata_json)
    assert (metadata.league_id, metadata.gang_code, metadata.gang_name) == (league.id, "ballas", "Ballas Family")

    sent = client.create_payment.call_args.args[0]
    assert sent["order"]["invoice_number"] == invoice
    assert sent["order"]["amount"] == 75000
    assert sent["order"]["currency"] == "IDR"
    assert sent["return_url"].endswith(f"invoiceNumber={invoice}")
    assert sent["customer"]["id"] == "ACC-77"
    assert sent["metadata"]["type"] == "league_join"


def test_checkout_unknown_league(db_conn, service):
    with pytest.raises(NotFoundError):
        service.create_join_checkout(db_conn, _client(), 404, REQUESTER, "{invoice_number}")


def test_checkout_requires_upcoming(db_conn, service, league):
    LeagueRepository().update_status(db_conn, league.id, "active")
    with pytest.raises(ValidationError):
        service.create_join_checkout(db_conn, _client(), league.id, REQUESTER, "{invoice_number}")


def test_checkout_rejects_already_joined(db_conn, service, league):
    TeamRepository().create(db_conn, league.id, "ballas", "Ballas")
    with pytest.raises(ConflictError):
        service.create_join_checkout(db_conn, _client(), league.id, REQUESTER, "{invoice_number}")


def test_checkout_upstream_failure_marks_payment_failed(db_conn, service, league):
    client = _client(error=UpstreamError("Payment service answered 500: boom"))
    with pytest.raises(UpstreamError):
        service.create_join_checkout(db_conn, client, league.id, REQUESTER, "{invoice_number}")
    row = db_conn.execute("SELECT status FROM payments").fetchone()
    assert row["status"] == "failed"


def test_checkout_asks_the_enrollment_guard(db_conn, service, league):
    with patch.object(LeagueService, "can_enroll", return_value=False) as guard:
        with pytest.raises(ValidationError):
            service.create_join_checkout(db_conn, _client(), league.id, REQUESTER, "{invoice_number}")
    guard.assert_called_once_with(db_conn, league.id)


# ---------- checkout, then admission ----------


def test_admitted_team_keeps_name_given_at_checkout(db_conn, service, league):
    invoice = service.create_join_checkout(db_conn, _client(), league.id, REQUESTER, "{invoice_number}")[
        "invoiceNumber"
    ]
    service.sync_payment_status(db_conn, invoice, "SUCCESS")
    assert service.insert_team_from_invoice(db_conn, invoice).inserted
    assert TeamRepository().get_by_league_and_code(db_conn, league.id, "ballas").name == "Ballas Family"


def test_checkout_name_wins_over_gang_registry(db_conn, service, league):
    GangRepository().upsert(db_conn, "ballas", "Ballas (old label)")
    invoice = service.create_join_checkout(db_conn, _client(), league.id, REQUESTER, "{invoice_number}")[
        "invoiceNumber"
    ]
    service.insert_team_from_invoice(db_conn, invoice)
    assert TeamRepository().get_by_league_and_code(db_conn, league.id, "ballas").name == "Ballas Family"


def test_unreadable_checkout_metadata_falls_back_to_registry(db_conn, service, league):
    GangRepository().upsert(db_conn, "ballas", "Ballas Registry")
    invoice = f"LEAGUE-{league.id}-ballas-1"
    PaymentRepository().create(
        db_conn, invoice, LEAGUE_JOIN_PURPOSE_TYPE, f"{league.id}:ballas", league.price, metadata_json="{not json"
    )
    assert service.insert_team_from_invoice(db_conn, invoice).ok
    assert TeamRepository().get_by_league_and_code(db_conn, league.id, "ballas").name == "Ballas Registry"


def test_checkout_metadata_for_another_gang_is_ignored(db_conn, service, league):
    invoice = f"LEAGUE-{league.id}-ballas-1"
    metadata = json.dumps(
        {"version": 1, "type": "league_join", "league_id": league.id, "gang_code": "vagos", "gang_name": "Vagos"}
    )
    PaymentRepository().create(
        db_conn, invoice, LEAGUE_JOIN_PURPOSE_TYPE, f"{league.id}:ballas", league.price, metadata_json=metadata
    )
    service.insert_team_from_invoice(db_conn, invoice)
    assert TeamRepository().get_by_league_and_code(db_conn, league.id, "ballas").name == "BALLAS"
