from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from machine_market.services.errors import UnauthorizedError


IDENTITY_LOGGER = logging.getLogger("machine_market.identity")
BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str | None = None

    def has_role(self, allowed: set[str] | frozenset[str]) -> bool:
        return (self.role or "").strip().lower() in allowed


def _require_jwt_secret() -> str:
    raw = (os.environ.get("JWT_SECRET") or "").strip()
    if not raw:
        raise RuntimeError("JWT_SECRET must be set.")
    return raw


def _jwt_algorithm() -> str:
    return (os.environ.get("JWT_ALGORITHM") or "HS256").strip() or "HS256"


def _parse_user_id(raw: Any) -> int:
    # Numeric claims arrive as float from some issuers.
    if isinstance(raw, bool):
        raise UnauthorizedError("Invalid token claims: user_id missing or invalid")
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if not isinstance(raw, int) or raw <= 0:
        raise UnauthorizedError("Invalid token claims: user_id missing or invalid")
    return raw


def identity_from_claims(claims: dict[str, Any]) -> Identity:
    user_id = _parse_user_id(claims.get("user_id"))
    role = claims.get("role")
    return Identity(user_id=user_id, role=str(role).strip() if role else None)


def decode_identity(token: str | None) -> Identity:
    if not token:
        raise UnauthorizedError("Missing bearer token")
    try:
        claims = jwt.decode(token, _require_jwt_secret(), algorithms=[_jwt_algorithm()])
    except JWTError as exc:
        IDENTITY_LOGGER.warning("Token rejected reason=%s", exc)
        raise UnauthorizedError("Invalid or expired token") from exc
    if not isinstance(claims, dict):
        raise UnauthorizedError("Invalid token claims")
    return identity_from_claims(claims)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME or not credentials.strip():
        return None
    return credentials.strip()
