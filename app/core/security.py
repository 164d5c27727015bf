# app/core/security.py
"""
Token verification for HTTP requests and websocket handshakes.

Tokens are issued by the authentication service; this module only verifies
them and turns the claims into a TokenClaims value. create_access_token is
kept for tooling and tests that need a signed token.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional
from uuid import UUID

from jose import jwt, JWTError, ExpiredSignatureError

from .config import settings
from .exceptions import Unauthenticated
from ..models.user import UserRole


@dataclass(frozen=True)
class TokenClaims:
    """Verified identity carried by a bearer token."""
    user_id: UUID
    role: UserRole
    email: Optional[str] = None


def create_access_token(
    user_id: UUID,
    role: UserRole,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "exp": expire,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: Optional[str]) -> TokenClaims:
    """Decode and validate a JWT. Raises Unauthenticated on any problem."""
    if not token or not token.strip():
        raise Unauthenticated("Unauthorized")

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except JWTError:
        raise Unauthenticated("Authentication failed")

    try:
        return TokenClaims(
            user_id=UUID(str(payload["sub"])),
            role=UserRole(payload["role"]),
            email=payload.get("email"),
        )
    except (KeyError, ValueError):
        raise Unauthenticated("Invalid token payload")


def extract_bearer_token(headers: Mapping[str, str], query_params: Mapping[str, str]) -> Optional[str]:
    """Token from `Authorization: Bearer ...`, falling back to `?token=`."""
    auth_header = headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return query_params.get("token")
