"""
REST API for the league backend.
Thin wrappers around domain logic and persistence.
Run with: uvicorn league_backend.api:create_app --factory --reload --port 8000
"""
from __future__ import annotations

import hmac
import logging
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncGenerator, Generator
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

# Ensure project root on path
import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from league_backend.auth import Principal, require_admin, require_gang, require_user
from league_backend.config import Settings
from league_backend.errors import LeagueEngineError, ValidationError, public_message
from league_backend.logging_config import setup_logging
from league_backend.models import LeagueStatus, MatchStatus, TeamStatus
from league_backend.persistence import (
    GangRepository,
    LeagueMatchRepository,
    LeagueRepository,
    TeamRepository,
    get_connection,
    init_db,
)
from league_backend.schemas import LeagueRules, dump_rules, load_rules
from league_backend.services import queries
from league_backend.services.enrollment import (
    REASON_INVALID_INVOICE,
    REASON_LEAGUE_NOT_FOUND,
    EnrollmentService,
    JoinRequester,
    ReconcileResult,
)
from league_backend.services.invoice import is_paid_status, parse_league_invoice
from league_backend.services.league_service import LeagueService
from league_backend.services.payment_client import PaymentServiceClient

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- Per-request plumbing ----------


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_payment_client(request: Request) -> PaymentServiceClient:
    return request.app.state.payment_client


@contextmanager
def db_conn(settings: Settings) -> Generator[sqlite3.Connection, None, None]:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection(settings.db_path)
    try:
        yield conn
    finally:
        conn.close()


def _http_error(e: LeagueEngineError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=public_message(e))


def _parse_league_id(raw: str) -> int:
    """Path ids must be positive integers."""
    try:
        league_id = int(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid league id.")
    if league_id < 1:
        raise HTTPException(status_code=400, detail="Invalid league id.")
    return league_id


def _check_status_filter(status: str | None, allowed: type[LeagueStatus] | type[MatchStatus]) -> str | None:
    if not status or status == "all":
        return None
    values = [s.value for s in allowed]
    if status not in values:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(values)}")
    return status


# ---------- Request models ----------


class CreateLeagueRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    price: int = Field(0, ge=0)
    max_team: int = Field(0, ge=0, alias="maxTeam")
    min_player: int = Field(0, ge=0, alias="minPlayer")
    start_at: datetime | None = Field(None, alias="startAt")
    end_at: datetime | None = Field(None, alias="endAt")
    rules: LeagueRules | None = None


class SeedTeamRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=100)
    name: str | None = Field(None, max_length=255)


class JoinLeagueRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    league_id: int = Field(..., ge=1, alias="leagueId")


class LeaguePaymentSuccessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invoice_number: str = Field(..., alias="invoiceNumber")
    transaction_status: str | None = Field(None, alias="transactionStatus")


# ---------- Admin: leagues ----------


@router.post("/admin/leagues", status_code=201)
def create_league(
    req: CreateLeagueRequest,
    principal: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Create a league. It starts in 'upcoming' and accepts enrollments until started."""
    if req.start_at and req.end_at and req.end_at < req.start_at:
        raise HTTPException(status_code=400, detail="endAt must not be before startAt.")
    with db_conn(settings) as conn:
        league = LeagueRepository().create(
            conn,
            name=req.name.strip(),
            creator=principal.username or principal.account_id,
            price=req.price,
            max_team=req.max_team,
            min_player=req.min_player,
            start_at=req.start_at,
            end_at=req.end_at,
            rules_json=dump_rules(req.rules),
        )
        logger.info("League created", extra={"league_id": league.id})
        return {"message": "League created successfully.", "league": league.to_dict()}


@router.get("/admin/leagues")
def list_leagues(
    q: str = "",
    status: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    _: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    status = _check_status_filter(status, LeagueStatus)
    with db_conn(settings) as conn:
        return queries.list_leagues(conn, query=q, status=status, page=page, limit=limit)


@router.get("/admin/leagues/schedule")
def get_admin_schedule(
    q: str = "",
    status: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    _: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """All league matches, any gang."""
    status = _check_status_filter(status, MatchStatus)
    with db_conn(settings) as conn:
        return queries.schedule_items(conn, None, query=q, status=status, page=page, limit=limit)


@router.get("/admin/leagues/{league_id}")
def get_league(
    league_id: str,
    _: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """League with its rules, teams and current table."""
    lid = _parse_league_id(league_id)
    with db_conn(settings) as conn:
        league = LeagueRepository().get(conn, lid)
        if league is None:
            raise HTTPException(status_code=404, detail="League not found.")
        try:
            rules = load_rules(league.rules_json)
        except ValidationError as e:
            logger.warning("Stored league rules are unreadable: %s", e.reason, extra={"league_id": lid})
            rules = None
        teams = TeamRepository().list_by_league(conn, lid)
        return {
            "league": {
                **league.to_dict(),
                "rules": rules.model_dump() if rules else None,
                "totalMatches": LeagueMatchRepository().count_by_league(conn, lid),
            },
            "teams": [t.to_dict() for t in teams],
            "table": queries.league_table(conn, lid),
        }


@router.post("/admin/leagues/{league_id}/teams", status_code=201)
def seed_league_team(
    league_id: str,
    req: SeedTeamRequest,
    _: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Enroll a team without payment. Only while the league is upcoming."""
    lid = _parse_league_id(league_id)
    code = req.code.strip().lower()
    if not code:
        raise HTTPException(status_code=400, detail="Team code is required.")
    with db_conn(settings) as conn:
        league = LeagueRepository().get(conn, lid)
        if league is None:
            raise HTTPException(status_code=404, detail="League not found.")
        if league.status != LeagueStatus.UPCOMING:
            raise HTTPException(status_code=400, detail="Selected league is not open for joining.")
        name = (req.name or "").strip() or GangRepository().get_label(conn, code) or code.upper()
        try:
            team = TeamRepository().create(conn, lid, code, name, status=TeamStatus.ACTIVE.value)
        except sqlite3.IntegrityError:
            raise HTTPException(status_code=409, detail="Team has already joined this league.")
        return {"message": "Team added to league.", "team": team.to_dict()}


@router.post("/admin/leagues/{league_id}/start")
def start_league(
    league_id: str,
    _: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Generate the double round-robin schedule and make the league active."""
    lid = _parse_league_id(league_id)
    svc = LeagueService(schedule_tz=ZoneInfo(settings.schedule_timezone))
    with db_conn(settings) as conn:
        try:
            result = svc.start_league(conn, lid)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"message": "League started successfully.", **result.to_dict()}


@router.post("/admin/leagues/{league_id}/finish")
def finish_league(
    league_id: str,
    _: Principal = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    lid = _parse_league_id(league_id)
    with db_conn(settings) as conn:
        try:
            LeagueService().finish_league(conn, lid)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"message": "League finished.", "leagueId": lid, "status": LeagueStatus.FINISHED.value}


# ---------- User: enrollment ----------


@router.get("/user/league/join")
def list_joinable_leagues(
    principal: Principal = Depends(require_gang),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn(settings) as conn:
        return {"leagues": queries.joinable_leagues(conn, principal.gang_code)}


@router.post("/user/league/join", status_code=201)
def join_league(
    req: JoinLeagueRequest,
    request: Request,
    principal: Principal = Depends(require_gang),
    settings: Settings = Depends(get_settings),
    client: PaymentServiceClient = Depends(get_payment_client),
) -> dict[str, Any]:
    """Open a checkout for the caller's gang. Only the gang boss may pay for entry."""
    if not principal.is_boss:
        raise HTTPException(status_code=403, detail="Only the gang boss can join a league.")
    requester = JoinRequester(
        account_id=principal.account_id,
        gang_code=principal.gang_code,
        gang_label=principal.gang_label or principal.gang_code.upper(),
        username=principal.username,
        email=principal.email,
    )
    return_url = str(request.url_for("complete_league_join")) + "?invoiceNumber={invoice_number}"
    with db_conn(settings) as conn:
        try:
            return EnrollmentService().create_join_checkout(
                conn,
                client,
                req.league_id,
                requester,
                return_url,
                currency=settings.payment_currency,
                due_minutes=settings.payment_due_minutes,
            )
        except LeagueEngineError as e:
            raise _http_error(e)


def _reconcile_error(result: ReconcileResult) -> HTTPException:
    if result.reason == REASON_INVALID_INVOICE:
        return HTTPException(status_code=400, detail="Invalid invoice number.")
    if result.reason == REASON_LEAGUE_NOT_FOUND:
        return HTTPException(status_code=404, detail="League not found.")
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("/user/league/join/verify")
def verify_league_join(
    invoice_number: str = Query("", alias="invoiceNumber"),
    principal: Principal = Depends(require_user),
    settings: Settings = Depends(get_settings),
    client: PaymentServiceClient = Depends(get_payment_client),
) -> dict[str, Any]:
    """Poll the payment service for an invoice and enroll the team once it is paid."""
    invoice_number = invoice_number.strip()
    parsed = parse_league_invoice(invoice_number)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid invoice number.")
    if not principal.is_admin and parsed.gang_code != principal.gang_code:
        raise HTTPException(status_code=403, detail="Invoice does not belong to your gang.")

    lookup = client.fetch_status(invoice_number)
    paid = lookup.ok and is_paid_status(lookup.status)
    svc = EnrollmentService()
    with db_conn(settings) as conn:
        tracked = svc.sync_payment_status(conn, invoice_number, lookup.status, lookup.payload).ok
        if not paid:
            return {"paid": False, "inserted": False, "status": lookup.status, "paymentTracked": tracked}
        result = svc.insert_team_from_invoice(conn, invoice_number)
        if not result.ok:
            raise _reconcile_error(result)
        return {"paid": True, "inserted": result.inserted, "status": lookup.status, "paymentTracked": tracked}


@router.get("/user/league/join/complete", name="complete_league_join")
def complete_league_join(
    invoice_number: str = Query("", alias="invoiceNumber"),
    settings: Settings = Depends(get_settings),
    client: PaymentServiceClient = Depends(get_payment_client),
) -> RedirectResponse:
    """
    Browser return from the checkout page. Always lands on the dashboard; failures
    are logged and the user can still verify from there.
    """
    invoice_number = invoice_number.strip()
    if invoice_number:
        try:
            lookup = client.fetch_status(invoice_number)
            svc = EnrollmentService()
            with db_conn(settings) as conn:
                sync = svc.sync_payment_status(conn, invoice_number, lookup.status, lookup.payload)
                if not sync.ok:
                    logger.warning(
                        "Payment sync skipped: %s", sync.reason, extra={"invoice_number": invoice_number}
                    )
                if lookup.ok and is_paid_status(lookup.status):
                    result = svc.insert_team_from_invoice(conn, invoice_number)
                    if not result.ok:
                        logger.error(
                            "League join completion failed",
                            extra={"invoice_number": invoice_number, "reason": result.reason},
                        )
        except Exception:
            logger.exception("League join completion failed", extra={"invoice_number": invoice_number})
    return RedirectResponse(settings.dashboard_url, status_code=302)


# ---------- Internal: payment push ----------


@router.post("/internal/payments/league/success")
def league_payment_success(
    req: LeaguePaymentSuccessRequest,
    response: Response,
    x_internal_token: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Payment service notification that an enrollment invoice was paid."""
    expected = settings.internal_webhook_token
    if expected and not hmac.compare_digest((x_internal_token or "").encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")

    invoice_number = req.invoice_number.strip()
    svc = EnrollmentService()
    with db_conn(settings) as conn:
        if req.transaction_status is not None:
            sync = svc.sync_payment_status(conn, invoice_number, req.transaction_status, req.model_dump(by_alias=True))
            if not sync.ok:
                logger.info("Payment sync skipped: %s", sync.reason, extra={"invoice_number": invoice_number})
            if not is_paid_status(req.transaction_status):
                return {"ok": True, "inserted": False, "status": req.transaction_status}

        result = svc.insert_team_from_invoice(conn, invoice_number)
        if not result.ok:
            raise _reconcile_error(result)
        if result.inserted:
            response.status_code = 201
            return {"ok": True, "inserted": True, "message": "Team joined league."}
        return {"ok": True, "inserted": False, "message": "Team already joined league."}


# ---------- User: standings & schedule ----------


@router.get("/user/league/status")
def get_league_status(
    q: str = "",
    status: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    principal: Principal = Depends(require_gang),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """The caller's gang across all leagues it entered, with standings."""
    status = _check_status_filter(status, LeagueStatus)
    with db_conn(settings) as conn:
        return queries.league_status_items(
            conn, principal.gang_code, query=q, status=status, page=page, limit=limit
        )


@router.get("/user/league/schedule")
def get_league_schedule(
    q: str = "",
    status: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    principal: Principal = Depends(require_gang),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    status = _check_status_filter(status, MatchStatus)
    with db_conn(settings) as conn:
        return queries.schedule_items(
            conn, principal.gang_code, query=q, status=status, page=page, limit=limit
        )


# ---------- FastAPI app ----------


def create_app(
    settings: Settings | None = None,
    payment_client: PaymentServiceClient | None = None,
) -> FastAPI:
    """Build the app around explicit settings. A payment client may be injected for tests."""
    settings = settings or Settings.from_env()
    client = payment_client or PaymentServiceClient(
        settings.payment_service_base_url, timeout=settings.payment_service_timeout
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(settings.log_level, settings.log_json)
        init_db(settings.db_path)
        yield
        if payment_client is None:
            client.close()

    app = FastAPI(
        title="League Competition API",
        description="League lifecycle, fixtures, standings and payment-gated enrollment",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.payment_client = client
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
