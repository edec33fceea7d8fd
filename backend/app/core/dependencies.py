"""
Authentication dependencies for FastAPI.

This module turns the bearer token issued by the identity provider into
the Actor the handoff core acts on behalf of.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.jwt import decode_access_token
from backend.app.domain.handoff.actor import Actor
from backend.app.models.enums import ActorRole

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Requires an actor reference (`sub`) in the payload
    3. Requires a known role in the payload

    The role is trusted as asserted by the identity provider.

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        Actor built from the token claims

    Raises:
        HTTPException: 401 if authentication fails for any reason
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor_ref = payload.get("sub")
    if not actor_ref:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = ActorRole(payload.get("role"))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(ref=str(actor_ref), role=role)
