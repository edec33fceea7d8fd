"""
Actor roles enumeration.

Defines the roles the identity provider may assert for a caller.
"""

import enum


class ActorRole(str, enum.Enum):
    """
    Actor role enumeration.

    Roles:
        ADMIN: Operations staff with override rights (including cancellation)
        PARTNER: Partner storefront or sorting hub handling parcels over the counter
        DRIVER: Courier carrying parcels between hubs and pickup points
        SYSTEM: Automated processes (e.g. driver assignment)
    """
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    DRIVER = "DRIVER"
    SYSTEM = "SYSTEM"
