"""
FastAPI Authentication Dependencies for Microservices

Resolves the caller's identity for a request. Two sources are accepted:

1. A Bearer access token (verified with JWTManager)
2. Gateway-forwarded identity headers (X-User-Id / X-User-Email), set by the
   API gateway after it has authenticated the session
"""

from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Header

from core.jwt_manager import get_jwt_manager

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    """Authenticated caller"""
    id: str
    email: Optional[str] = None


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
) -> Optional[CurrentUser]:
    """
    Identity provider: returns the current user or None.

    A malformed or expired Bearer token resolves to None rather than falling
    back to the headers.
    """
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        result = get_jwt_manager().verify_token(token)
        if not result.get("valid"):
            logger.debug(f"Rejected bearer token: {result.get('error')}")
            return None
        return CurrentUser(id=result["user_id"], email=result.get("email"))

    if x_user_id:
        return CurrentUser(id=x_user_id, email=x_user_email)

    return None


__all__ = [
    "CurrentUser",
    "get_current_user",
]
