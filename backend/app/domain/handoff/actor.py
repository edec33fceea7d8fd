"""
Acting identity for handoff operations.
"""

from dataclasses import dataclass

from backend.app.models.enums import ActorRole


@dataclass(frozen=True)
class Actor:
    """Caller identity as asserted by the identity provider; trusted as-is."""
    ref: str
    role: ActorRole
