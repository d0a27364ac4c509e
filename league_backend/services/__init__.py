"""
Service layer: league lifecycle, fixture generation, standings, payment-gated enrollment.
league_service and enrollment orchestrate persistence; scheduling, standings and
invoice are pure.
"""
from .enrollment import EnrollmentService, JoinRequester, ReconcileResult, SyncResult
from .invoice import LeagueInvoice, build_league_invoice, is_paid_status, parse_league_invoice
from .league_service import LeagueService, StartResult
from .payment_client import PaymentServiceClient, PaymentStatusLookup
from .scheduling import generate_league_schedule
from .standings import compute_standing, rank_standings

__all__ = [
    "EnrollmentService",
    "JoinRequester",
    "ReconcileResult",
    "SyncResult",
    "LeagueInvoice",
    "build_league_invoice",
    "is_paid_status",
    "parse_league_invoice",
    "LeagueService",
    "StartResult",
    "PaymentServiceClient",
    "PaymentStatusLookup",
    "generate_league_schedule",
    "compute_standing",
    "rank_standings",
]
