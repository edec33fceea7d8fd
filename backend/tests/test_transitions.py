"""
Transition Table Tests.

The declared edges, their roles, and the per-operation resolution used by
batch handoffs.
"""

import pytest

from backend.app.core.exceptions import InvalidTransitionError, TransitionForbiddenError
from backend.app.domain.handoff.transitions import (
    EDGES, TERMINAL_STATUSES, INITIAL_STATUS,
    check_transition, is_legal_edge, outgoing_edges, resolve_next_status
)
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_enums import ParcelStatus, HandoffOperation


def test_initial_and_terminal_statuses():
    assert INITIAL_STATUS == ParcelStatus.CREATED
    assert TERMINAL_STATUSES == {ParcelStatus.DELIVERED, ParcelStatus.CANCELLED}


def test_terminal_statuses_have_no_outgoing_edges():
    for status in TERMINAL_STATUSES:
        assert outgoing_edges(status) == []


def test_every_non_terminal_status_can_be_cancelled_by_admin_only():
    for status in ParcelStatus:
        if status in TERMINAL_STATUSES:
            continue
        edge = EDGES[(status, ParcelStatus.CANCELLED)]
        assert edge.allowed_roles == {ActorRole.ADMIN}
        assert edge.operation is None


def test_no_backward_edges():
    assert not is_legal_edge(ParcelStatus.OUT_FOR_DELIVERY, ParcelStatus.PICKUP_READY)
    assert not is_legal_edge(ParcelStatus.FACILITY_RECEIVED, ParcelStatus.CREATED)


def test_check_transition_returns_edge():
    edge = check_transition(ParcelStatus.CREATED, ParcelStatus.FACILITY_RECEIVED, ActorRole.PARTNER)
    assert edge.target == ParcelStatus.FACILITY_RECEIVED
    assert edge.operation == HandoffOperation.DROPOFF


def test_check_transition_rejects_undeclared_edge():
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(ParcelStatus.CREATED, ParcelStatus.DELIVERED, ActorRole.ADMIN)
    assert exc_info.value.details["reason"] == "no such edge"


def test_check_transition_rejects_terminal_source():
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(ParcelStatus.DELIVERED, ParcelStatus.CANCELLED, ActorRole.ADMIN)
    assert "terminal" in exc_info.value.details["reason"]


def test_check_transition_rejects_wrong_role():
    """A partner may not start a driver's pickup run."""
    with pytest.raises(TransitionForbiddenError) as exc_info:
        check_transition(
            ParcelStatus.ASSIGNED_TO_DRIVER, ParcelStatus.IN_TRANSIT_TO_PICKUP_POINT, ActorRole.PARTNER
        )
    assert exc_info.value.details["allowed_roles"] == ["DRIVER"]


def test_invalid_edge_reported_before_role():
    with pytest.raises(InvalidTransitionError):
        check_transition(ParcelStatus.CREATED, ParcelStatus.OUT_FOR_DELIVERY, ActorRole.DRIVER)


@pytest.mark.parametrize("current,operation,expected", [
    (ParcelStatus.CREATED, HandoffOperation.DROPOFF, ParcelStatus.FACILITY_RECEIVED),
    (ParcelStatus.FACILITY_RECEIVED, HandoffOperation.PICKUP, ParcelStatus.IN_TRANSIT_TO_FACILITY_HUB),
    (ParcelStatus.IN_TRANSIT_TO_FACILITY_HUB, HandoffOperation.DROPOFF, ParcelStatus.PICKUP_READY),
    (ParcelStatus.ASSIGNED_TO_DRIVER, HandoffOperation.PICKUP, ParcelStatus.IN_TRANSIT_TO_PICKUP_POINT),
    (ParcelStatus.IN_TRANSIT_TO_PICKUP_POINT, HandoffOperation.PICKUP, ParcelStatus.OUT_FOR_DELIVERY),
    (ParcelStatus.OUT_FOR_DELIVERY, HandoffOperation.DROPOFF, ParcelStatus.DELIVERED),
])
def test_resolve_next_status(current, operation, expected):
    assert resolve_next_status(current, operation) == expected


@pytest.mark.parametrize("current,operation", [
    (ParcelStatus.CREATED, HandoffOperation.PICKUP),
    (ParcelStatus.PICKUP_READY, HandoffOperation.PICKUP),
    (ParcelStatus.PICKUP_READY, HandoffOperation.DROPOFF),
    (ParcelStatus.DELIVERED, HandoffOperation.DROPOFF),
    (ParcelStatus.CANCELLED, HandoffOperation.PICKUP),
])
def test_resolve_next_status_without_matching_edge(current, operation):
    assert resolve_next_status(current, operation) is None
