from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from loanlink.core.exceptions import Unauthenticated
from loanlink.core.permissions import Role
from loanlink.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IdentityClaim:
    subject_id: str
    email: str
    role: Role


class JWTKeyError(RuntimeError):
    pass


def _is_symmetric(algorithm: str) -> bool:
    return algorithm.upper().startswith("HS")


@lru_cache(maxsize=1)
def _load_signing_key() -> str:
    if _is_symmetric(settings.jwt_algorithm):
        return settings.secret_key
    if settings.jwt_private_key:
        return settings.jwt_private_key
    if settings.jwt_private_key_path:
        return _read_key(settings.jwt_private_key_path)
    raise JWTKeyError("JWT private key not configured")


@lru_cache(maxsize=1)
def _load_verification_key() -> str:
    if _is_symmetric(settings.jwt_algorithm):
        return settings.secret_key
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_public_key_path:
        return _read_key(settings.jwt_public_key_path)
    raise JWTKeyError("JWT public key not configured")


def _read_key(path: str) -> str:
    with open(path, "r", encoding="utf-8") as key_file:
        return key_file.read()


def create_access_token(
    subject_id: str,
    email: str,
    role: Role | str,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode: dict[str, Any] = {
        "sub": subject_id,
        "email": email,
        "role": Role.parse(role).value,
        "iat": now,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, _load_signing_key(), algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, _load_verification_key(), algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise ValueError("Token expired") from exc
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if payload.get("type", "access") != "access":
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload


def authenticate_token(token: str | None) -> IdentityClaim:
    """Verify a session token and return the caller's identity.

    Every failure collapses into ``Unauthenticated``; the specific reason is
    only logged server-side.
    """
    if not token:
        raise Unauthenticated()
    try:
        payload = decode_token(token)
        subject_id = payload.get("sub")
        email = payload.get("email")
        if not subject_id or not email:
            raise ValueError("Missing identity claims")
        role = Role.parse(payload.get("role"))
    except ValueError as exc:
        logger.warning("Session token rejected: %s", exc)
        raise Unauthenticated() from exc
    return IdentityClaim(subject_id=str(subject_id), email=str(email), role=role)
