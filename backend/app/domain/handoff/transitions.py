"""
Parcel Lifecycle Transition Table (Domain Logic).

The single declarative mapping of legal status edges, the roles allowed
to take each edge, and the batch handoff operation (if any) an edge can
be resolved through. Everything that asks "may this happen?" consults
this module; nothing else encodes role rules.
"""

from dataclasses import dataclass
from typing import Optional

from backend.app.core.exceptions import InvalidTransitionError, TransitionForbiddenError
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_enums import ParcelStatus, HandoffOperation


@dataclass(frozen=True)
class Edge:
    source: ParcelStatus
    target: ParcelStatus
    allowed_roles: frozenset
    operation: Optional[HandoffOperation] = None
    # The only edge that may record a driver as custodian
    assigns_driver: bool = False


INITIAL_STATUS = ParcelStatus.CREATED

TERMINAL_STATUSES = frozenset({
    ParcelStatus.DELIVERED,
    ParcelStatus.CANCELLED,
})

_PARTNER_OR_ADMIN = frozenset({ActorRole.PARTNER, ActorRole.ADMIN})

_FORWARD_EDGES = [
    Edge(ParcelStatus.CREATED, ParcelStatus.FACILITY_RECEIVED,
         _PARTNER_OR_ADMIN, HandoffOperation.DROPOFF),
    Edge(ParcelStatus.FACILITY_RECEIVED, ParcelStatus.IN_TRANSIT_TO_FACILITY_HUB,
         _PARTNER_OR_ADMIN, HandoffOperation.PICKUP),
    Edge(ParcelStatus.IN_TRANSIT_TO_FACILITY_HUB, ParcelStatus.PICKUP_READY,
         _PARTNER_OR_ADMIN, HandoffOperation.DROPOFF),
    Edge(ParcelStatus.PICKUP_READY, ParcelStatus.ASSIGNED_TO_DRIVER,
         frozenset({ActorRole.ADMIN, ActorRole.SYSTEM}), assigns_driver=True),
    Edge(ParcelStatus.ASSIGNED_TO_DRIVER, ParcelStatus.IN_TRANSIT_TO_PICKUP_POINT,
         frozenset({ActorRole.DRIVER}), HandoffOperation.PICKUP),
    Edge(ParcelStatus.IN_TRANSIT_TO_PICKUP_POINT, ParcelStatus.OUT_FOR_DELIVERY,
         frozenset({ActorRole.DRIVER}), HandoffOperation.PICKUP),
    Edge(ParcelStatus.OUT_FOR_DELIVERY, ParcelStatus.DELIVERED,
         frozenset({ActorRole.DRIVER, ActorRole.PARTNER}), HandoffOperation.DROPOFF),
]

_CANCEL_EDGES = [
    Edge(status, ParcelStatus.CANCELLED, frozenset({ActorRole.ADMIN}))
    for status in ParcelStatus
    if status not in TERMINAL_STATUSES
]

EDGES: dict = {(edge.source, edge.target): edge for edge in _FORWARD_EDGES + _CANCEL_EDGES}


def is_terminal(status: ParcelStatus) -> bool:
    return status in TERMINAL_STATUSES


def get_edge(source: ParcelStatus, target: ParcelStatus) -> Optional[Edge]:
    return EDGES.get((source, target))


def is_legal_edge(source: ParcelStatus, target: ParcelStatus) -> bool:
    return (source, target) in EDGES


def outgoing_edges(source: ParcelStatus) -> list[Edge]:
    return [edge for edge in EDGES.values() if edge.source == source]


def check_transition(current: ParcelStatus, target: ParcelStatus, role: ActorRole) -> Edge:
    """
    Decide whether `role` may move a parcel from `current` to `target`.

    Checks run in a fixed order: terminal source, declared edge, role.
    The caller handles the current == target no-op before calling this.

    Returns:
        The matching Edge

    Raises:
        InvalidTransitionError: source is terminal or no edge is declared
        TransitionForbiddenError: edge exists but the role is not allowed
    """
    if is_terminal(current):
        raise InvalidTransitionError(current.value, target.value, reason="parcel is in a terminal status")

    edge = get_edge(current, target)
    if edge is None:
        raise InvalidTransitionError(current.value, target.value)

    if role not in edge.allowed_roles:
        raise TransitionForbiddenError(
            current.value,
            target.value,
            role.value,
            sorted(r.value for r in edge.allowed_roles),
        )

    return edge


def resolve_next_status(current: ParcelStatus, operation: HandoffOperation) -> Optional[ParcelStatus]:
    """
    Next status a batch handoff of kind `operation` moves a parcel to.

    Batches may mix parcels at different stages, so the target is resolved
    per parcel from its own current status. Role authorization is left to
    check_transition so a wrong role surfaces as FORBIDDEN, not as a
    missing edge.

    Returns:
        The target status, or None when no edge from `current` belongs to
        this operation (including terminal parcels)
    """
    for edge in outgoing_edges(current):
        if edge.operation == operation:
            return edge.target
    return None
