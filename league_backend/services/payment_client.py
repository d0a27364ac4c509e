"""
HTTP client for the external payment service.

Only the contract matters here:
  GET  {base}/api/payments/{invoiceNumber}/status  -> JSON carrying a status string
  POST {base}/api/payments                          -> JSON carrying a checkout url

Status lookups never raise: timeouts, transport errors, non-2xx answers and
unreadable bodies come back as ok=False, which callers treat as "not paid yet".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from league_backend.errors import UpstreamError

logger = logging.getLogger(__name__)

_STATUS_PATHS: tuple[tuple[str, ...], ...] = (
    ("transaction", "status"),
    ("status",),
    ("order", "status"),
    ("payment", "status"),
    ("data", "transaction", "status"),
    ("data", "status"),
)

_CHANNEL_PATHS: tuple[tuple[str, ...], ...] = (
    ("channel", "id"),
    ("channel",),
    ("service", "id"),
    ("service",),
    ("acquirer", "id"),
    ("payment", "channel"),
    ("data", "channel", "id"),
    ("data", "service", "id"),
)

_CHECKOUT_URL_PATHS: tuple[tuple[str, ...], ...] = (
    ("url",),
    ("redirect_url",),
    ("checkout", "url"),
    ("payment", "url"),
    ("payment", "payment_url"),
    ("response", "url"),
    ("response", "payment", "url"),
)


def _read_path(value: Any, path: tuple[str, ...]) -> str | None:
    current = value
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current if isinstance(current, str) else None


def _first_non_empty(payload: Any, paths: tuple[tuple[str, ...], ...]) -> str | None:
    for path in paths:
        value = _read_path(payload, path)
        if value and value.strip():
            return value.strip()
    return None


def extract_payment_status(payload: Any) -> str | None:
    return _first_non_empty(payload, _STATUS_PATHS)


def extract_payment_channel(payload: Any) -> str | None:
    return _first_non_empty(payload, _CHANNEL_PATHS)


def extract_checkout_url(payload: Any) -> str | None:
    return _first_non_empty(payload, _CHECKOUT_URL_PATHS)


@dataclass(frozen=True)
class PaymentStatusLookup:
    """ok is False when the upstream call failed in any way."""
    ok: bool
    status: str | None
    payload: Any = None


class PaymentServiceClient:
    """Thin wrapper over httpx with an explicit timeout on every call."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def fetch_status(self, invoice_number: str) -> PaymentStatusLookup:
        path = f"/api/payments/{quote(invoice_number, safe='')}/status"
        try:
            response = self._client.get(path)
        except httpx.HTTPError as e:
            logger.warning(
                "Payment status request failed: %s", e, extra={"invoice_number": invoice_number}
            )
            return PaymentStatusLookup(ok=False, status=None)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        status = extract_payment_status(payload)
        if not response.is_success:
            logger.warning(
                "Payment status request answered %s",
                response.status_code,
                extra={"invoice_number": invoice_number, "upstream_status": status},
            )
            return PaymentStatusLookup(ok=False, status=status, payload=payload)
        return PaymentStatusLookup(ok=True, status=status, payload=payload)

    def create_payment(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an upstream payment. Raises UpstreamError on any failure."""
        invoice_number = (payload.get("order") or {}).get("invoice_number")
        try:
            response = self._client.post("/api/payments", json=payload)
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"Payment creation request failed: {e!s}", invoice_number=invoice_number
            ) from e
        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.is_success:
            detail = None
            if isinstance(body, dict):
                detail = body.get("message") or body.get("error")
            raise UpstreamError(
                f"Payment service answered {response.status_code}: {detail or 'no detail'}",
                invoice_number=invoice_number,
                upstream_status_code=response.status_code,
            )
        return body if isinstance(body, dict) else {}
