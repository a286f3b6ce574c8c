"""Order transition table and role gates.

Pure functions only. They validate a requested edge against a loaded order
snapshot; the conditional UPDATE in the repository re-checks the source state
at commit time.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from food_service.db.models import DeliveryType, OrderStatus
from food_service.services.errors import (
    DriverWillComplete,
    IllegalTransition,
    StaleTransition,
    WouldUsurpDriver,
)


class Role(str, enum.Enum):
    BRANCH_ADMIN = "branch_admin"
    ANY_DRIVER = "any_driver"
    ASSIGNED_DRIVER = "assigned_driver"


@dataclass(frozen=True, slots=True)
class Edge:
    source: OrderStatus
    target: OrderStatus
    role: Role
    pickup_only: bool = False


S = OrderStatus

TRANSITIONS: tuple[Edge, ...] = (
    Edge(S.NEW, S.PREPARING, Role.BRANCH_ADMIN),
    Edge(S.NEW, S.REJECTED, Role.BRANCH_ADMIN),
    Edge(S.PREPARING, S.READY, Role.BRANCH_ADMIN),
    Edge(S.READY, S.COMPLETED, Role.BRANCH_ADMIN, pickup_only=True),
    Edge(S.READY, S.ASSIGNED, Role.ANY_DRIVER),
    Edge(S.ASSIGNED, S.PICKED_UP, Role.ASSIGNED_DRIVER),
    Edge(S.PICKED_UP, S.DELIVERING, Role.ASSIGNED_DRIVER),
    Edge(S.DELIVERING, S.COMPLETED, Role.ASSIGNED_DRIVER),
    Edge(S.ASSIGNED, S.COMPLETED, Role.ASSIGNED_DRIVER),
)

_EDGES: dict[tuple[OrderStatus, OrderStatus], Edge] = {
    (edge.source, edge.target): edge for edge in TRANSITIONS
}

INITIAL_STATUS = S.NEW
TERMINAL = frozenset({S.COMPLETED, S.REJECTED})

# Position along the lifecycle; terminal states sort last.
_PROGRESS = {
    S.NEW: 0,
    S.PREPARING: 1,
    S.READY: 2,
    S.ASSIGNED: 3,
    S.PICKED_UP: 4,
    S.DELIVERING: 5,
    S.COMPLETED: 9,
    S.REJECTED: 9,
}


def edge(source: OrderStatus, target: OrderStatus) -> Optional[Edge]:
    return _EDGES.get((source, target))


def is_legal(source: OrderStatus, target: OrderStatus) -> bool:
    return (source, target) in _EDGES


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL


def sources_for(target: OrderStatus, role: Role) -> tuple[OrderStatus, ...]:
    return tuple(e.source for e in TRANSITIONS if e.target == target and e.role is role)


def _missing_edge(order_id: int, current: OrderStatus, target: OrderStatus, role: Role) -> Exception:
    # The order already moved past every source this role could act from:
    # somebody else got there first.
    sources = sources_for(target, role)
    if sources and all(_PROGRESS[current] > _PROGRESS[s] for s in sources):
        return StaleTransition(
            f"order {order_id} is {current.value}, cannot go to {target.value}",
            order_id=order_id,
        )
    return IllegalTransition(
        f"{current.value} -> {target.value} is not allowed for {role.value}",
        order_id=order_id,
        reason="no-edge",
    )


def check_admin_transition(
    order_id: int,
    current: OrderStatus,
    target: OrderStatus,
    *,
    driver_id: Optional[int],
    delivery_type: DeliveryType,
) -> Edge:
    """Validate a branch-admin request; returns the edge to apply."""
    if driver_id is not None:
        raise WouldUsurpDriver(
            f"order {order_id} is handled by driver {driver_id}", order_id=order_id
        )
    found = edge(current, target)
    if found is None or found.role is not Role.BRANCH_ADMIN:
        raise _missing_edge(order_id, current, target, Role.BRANCH_ADMIN)
    if found.pickup_only and delivery_type != DeliveryType.PICKUP:
        if delivery_type == DeliveryType.DELIVERY:
            raise DriverWillComplete(
                f"order {order_id} is a delivery order", order_id=order_id
            )
        raise IllegalTransition(
            f"order {order_id} has no delivery type yet",
            order_id=order_id,
            reason="delivery-type-unset",
        )
    return found


def check_driver_transition(
    order_id: int,
    current: OrderStatus,
    target: OrderStatus,
    *,
    assigned_driver_id: Optional[int],
    acting_driver_id: int,
) -> Edge:
    """Validate a request from the driver bound to the order."""
    if assigned_driver_id is None or assigned_driver_id != acting_driver_id:
        raise IllegalTransition(
            f"order {order_id} is not assigned to driver {acting_driver_id}",
            order_id=order_id,
            reason="not-assigned",
        )
    found = edge(current, target)
    if found is None or found.role is not Role.ASSIGNED_DRIVER:
        raise _missing_edge(order_id, current, target, Role.ASSIGNED_DRIVER)
    return found


def is_valid_path(statuses: list[OrderStatus]) -> bool:
    """True when ``statuses`` starts at ``new`` and only follows table edges."""
    if not statuses or statuses[0] != INITIAL_STATUS:
        return False
    for source, target in zip(statuses, statuses[1:]):
        if is_terminal(source) or not is_legal(source, target):
            return False
    return True
