"""Authentication utilities.

Tokens are validated by the identity provider; here a bearer token is only
resolved to the caller it stands for and that caller's permissions.
"""
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional
from fastapi import Depends, Header, HTTPException
import logging

from config import API_TOKENS
from monitoring import auth_failures_counter, auth_attempts_counter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Authenticated caller."""
    user_id: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has(self, permission: str) -> bool:
        return permission in self.permissions


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` header, or None."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def user_id_for_token(token: str) -> Optional[str]:
    entry = API_TOKENS.get(token)
    return entry["user_id"] if entry else None


def verify_token(authorization: Optional[str] = Header(None)) -> Caller:
    """
    Verify authentication token.

    Args:
        authorization: Authorization header value

    Returns:
        Caller the token belongs to

    Raises:
        HTTPException: If token is invalid or missing
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Missing authorization header")

    token = bearer_token(authorization)
    if token is None:
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    entry = API_TOKENS.get(token)
    if entry is None:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise HTTPException(status_code=401, detail="Invalid token")

    logger.debug("Authentication successful", extra={"user_id": entry["user_id"]})
    return Caller(user_id=entry["user_id"], permissions=frozenset(entry.get("permissions", [])))


def require_permission(permission: str) -> Callable[..., Caller]:
    """
    Build a dependency that authenticates the caller and checks one permission.

    Args:
        permission: Permission name, e.g. ``wallet_write``

    Returns:
        FastAPI dependency resolving to the caller
    """
    def dependency(caller: Caller = Depends(verify_token)) -> Caller:
        if not caller.has(permission):
            auth_failures_counter.add(1, {"reason": "missing_permission"})
            logger.warning("Authorization failed: Missing permission", extra={
                "user_id": caller.user_id,
                "permission": permission
            })
            raise HTTPException(status_code=403, detail=f"Missing permission: {permission}")
        return caller

    return dependency
