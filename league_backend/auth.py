"""
Bearer-token auth for the league API.
Tokens are HS256 JWTs issued by the account service; this module only verifies them
(create_access_token exists for scripts and tests).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days
ADMIN_ROLE = "admin"

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    account_id: str
    role: str | None = None
    gang_code: str | None = None
    gang_label: str | None = None
    is_boss: bool = False
    username: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def create_access_token(
    subject: str,
    secret_key: str,
    role: str | None = None,
    gang: str | None = None,
    gang_label: str | None = None,
    is_boss: bool = False,
    algorithm: str = ALGORITHM,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
    **extra_claims: Any,
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire, "is_boss": is_boss, **extra_claims}
    if role:
        to_encode["role"] = role
    if gang:
        to_encode["gang"] = gang
    if gang_label:
        to_encode["gang_label"] = gang_label
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_token(token: str, secret_key: str, algorithm: str = ALGORITHM) -> Principal | None:
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    gang = payload.get("gang")
    return Principal(
        account_id=str(subject),
        role=payload.get("role"),
        gang_code=str(gang).strip().lower() if gang else None,
        gang_label=payload.get("gang_label"),
        is_boss=bool(payload.get("is_boss", False)),
        username=payload.get("username"),
        email=payload.get("email"),
    )


# ---------- FastAPI dependencies ----------


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Principal:
    """401 unless the request carries a valid bearer token."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    settings = request.app.state.settings
    principal = decode_token(credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm)
    if principal is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return principal


def require_admin(principal: Principal = Depends(require_user)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return principal


def require_gang(principal: Principal = Depends(require_user)) -> Principal:
    """403 when the account is not in a gang."""
    if not principal.gang_code:
        raise HTTPException(status_code=403, detail="Gang membership required")
    return principal
