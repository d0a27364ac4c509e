#!/usr/bin/env python3
"""
Drive the enrollment push path against a running API.
Run with the API already up: uvicorn league_backend.api:create_app --factory --reload --port 8000

  export JWT_SECRET_KEY=...                    # same value as the server
  export INTERNAL_PAYMENT_WEBHOOK_TOKEN=...     # if the server has one
  python3 scripts/try_enrollment.py
"""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from league_backend.auth import create_access_token
from league_backend.config import Settings
from league_backend.services.invoice import build_league_invoice

BASE = os.environ.get("LEAGUE_API_BASE_URL", "http://127.0.0.1:8000")


def main() -> None:
    settings = Settings.from_env()
    admin = {"Authorization": f"Bearer {create_access_token('try-admin', settings.jwt_secret_key, role='admin')}"}
    member = {"Authorization": f"Bearer {create_access_token('try-member', settings.jwt_secret_key, gang='ballas')}"}
    internal = {"x-internal-token": settings.internal_webhook_token} if settings.internal_webhook_token else {}

    client = httpx.Client(base_url=BASE, timeout=30.0)
    try:
        r = client.post("/admin/leagues", json={"name": "Try Enrollment Cup", "price": 0}, headers=admin)
        r.raise_for_status()
        league = r.json()["league"]
        print(f"League: {league['id']} {league['name']}")

        invoice = build_league_invoice(league["id"], "ballas")
        for attempt in (1, 2):
            push = client.post(
                "/internal/payments/league/success",
                json={"invoiceNumber": invoice, "transactionStatus": "SUCCESS"},
                headers=internal,
            )
            print(f"Push #{attempt}: HTTP {push.status_code} {push.json()}")

        status = client.get("/user/league/status", headers=member)
        status.raise_for_status()
        print("\n--- GET /user/league/status ---")
        print(json.dumps(status.json(), indent=2))
    finally:
        client.close()


if __name__ == "__main__":
    main()
