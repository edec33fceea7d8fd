"""
Bearer token handling.

Tokens are minted by the identity provider and carry two claims this
service relies on: `sub` (the actor reference) and `role`. Only decoding
matters in production; the encoding helpers serve local setups and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Sign `data` with an `exp` claim (default lifetime from settings)."""
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_actor_token(actor_ref: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Token asserting that `actor_ref` acts in `role`, e.g. ("driver-42", "DRIVER")."""
    return create_access_token({"sub": actor_ref, "role": role}, expires_delta)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature and expiry.

    Returns:
        The claims, or None when the token is malformed, forged or expired
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
