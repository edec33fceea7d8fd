"""
Security guards for role-based access to endpoints.

Endpoint guards only decide who may call an endpoint at all. Which role
may move a parcel along which edge is decided by the transition table.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.core.dependencies import get_current_actor
from backend.app.domain.handoff.actor import Actor
from backend.app.models.enums import ActorRole


def require_role(allowed_roles: List[ActorRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/admin/parcels/{tracking_code}/consistency")
        async def consistency(actor: Actor = Depends(require_role([ActorRole.ADMIN]))):
            ...

    Args:
        allowed_roles: Roles allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates the actor role

    Raises:
        HTTPException 403 if the actor role is not in allowed_roles
    """
    async def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return actor

    return role_checker


require_admin = require_role([ActorRole.ADMIN])
