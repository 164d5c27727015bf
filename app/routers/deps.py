# app/routers/deps.py
"""Shared route dependencies: caller identity and role checks."""
import logging
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import NotAuthorized
from ..core.security import extract_bearer_token, verify_token
from ..models.user import UserRole
from ..services.chat.authorization import ChatIdentity, ProfileDirectory

logger = logging.getLogger(__name__)


async def get_current_identity(request: Request, db: AsyncSession = Depends(get_db)) -> ChatIdentity:
    """Verify the bearer token and resolve the caller's role profile"""
    token = extract_bearer_token(request.headers, {})
    claims = verify_token(token)
    return await ProfileDirectory(db).build_identity(claims.user_id, claims.role)


def require_roles(*roles: UserRole):
    allowed = tuple(roles)

    async def checker(identity: ChatIdentity = Depends(get_current_identity)) -> ChatIdentity:
        if identity.role not in allowed:
            logger.warning(
                f"User {identity.user_id} ({identity.role.value}) denied; requires {[r.value for r in allowed]}"
            )
            raise NotAuthorized(
                f"This action requires one of the following roles: {', '.join(r.value for r in allowed)}"
            )
        return identity

    return checker
