"""Status Configuration and Transition Rules

Valid status values and allowed transitions for sales orders and the
work documents created by fulfillment orchestration (picking slips,
job cards, transfer requests, purchase orders). Every status change goes
through validate_transition() so documents can't skip states.
"""
from enum import Enum
from typing import Dict, List, Set


# =============================================================================
# Sales Order Status
# =============================================================================

class SalesOrderStatus(str, Enum):
    """Valid status values for Sales Orders"""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    READY_TO_SHIP = "ready_to_ship"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CLOSED = "closed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


SALES_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    SalesOrderStatus.DRAFT: {
        SalesOrderStatus.CONFIRMED,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.CONFIRMED: {
        SalesOrderStatus.PROCESSING,
        SalesOrderStatus.ON_HOLD,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.PROCESSING: {
        SalesOrderStatus.CONFIRMED,  # Every document was cancelled
        SalesOrderStatus.READY_TO_SHIP,
        SalesOrderStatus.ON_HOLD,
        SalesOrderStatus.CANCELLED,
    },
    SalesOrderStatus.READY_TO_SHIP: {
        SalesOrderStatus.PROCESSING,  # A covering document was reopened or cancelled
        SalesOrderStatus.SHIPPED,
        SalesOrderStatus.PARTIALLY_SHIPPED,
        SalesOrderStatus.ON_HOLD,
    },
    SalesOrderStatus.PARTIALLY_SHIPPED: {
        SalesOrderStatus.SHIPPED,
        SalesOrderStatus.ON_HOLD,
    },
    SalesOrderStatus.SHIPPED: {
        SalesOrderStatus.DELIVERED,
    },
    SalesOrderStatus.DELIVERED: {
        SalesOrderStatus.CLOSED,
    },
    SalesOrderStatus.CLOSED: set(),  # Terminal
    SalesOrderStatus.CANCELLED: set(),  # Terminal
    SalesOrderStatus.ON_HOLD: {
        SalesOrderStatus.CONFIRMED,
        SalesOrderStatus.PROCESSING,
        SalesOrderStatus.READY_TO_SHIP,
        SalesOrderStatus.CANCELLED,
    },
}

# Orders in these states accept fulfillment planning and execution
PLANNABLE_ORDER_STATUSES: Set[str] = {
    SalesOrderStatus.CONFIRMED.value,
    SalesOrderStatus.PROCESSING.value,
}

# Statuses the orchestration engine derives; anything else is owned elsewhere
DERIVED_ORDER_STATUSES: Set[str] = {
    SalesOrderStatus.CONFIRMED.value,
    SalesOrderStatus.PROCESSING.value,
    SalesOrderStatus.READY_TO_SHIP.value,
}


# =============================================================================
# Picking Slip Status
# =============================================================================

class PickingSlipStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


PICKING_SLIP_TRANSITIONS: Dict[str, Set[str]] = {
    PickingSlipStatus.PENDING: {
        PickingSlipStatus.IN_PROGRESS,
        PickingSlipStatus.CANCELLED,
    },
    PickingSlipStatus.IN_PROGRESS: {
        PickingSlipStatus.COMPLETE,
        PickingSlipStatus.CANCELLED,
    },
    PickingSlipStatus.COMPLETE: set(),  # Terminal
    PickingSlipStatus.CANCELLED: set(),  # Terminal
}


# =============================================================================
# Job Card Status
# =============================================================================

class JobCardStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


JOB_CARD_TRANSITIONS: Dict[str, Set[str]] = {
    JobCardStatus.PENDING: {
        JobCardStatus.IN_PROGRESS,
        JobCardStatus.CANCELLED,
    },
    JobCardStatus.IN_PROGRESS: {
        JobCardStatus.ON_HOLD,
        JobCardStatus.COMPLETE,
        JobCardStatus.CANCELLED,
    },
    JobCardStatus.ON_HOLD: {
        JobCardStatus.IN_PROGRESS,
        JobCardStatus.CANCELLED,
    },
    JobCardStatus.COMPLETE: set(),  # Terminal
    JobCardStatus.CANCELLED: set(),  # Terminal
}


# =============================================================================
# Transfer Request Status
# =============================================================================

class TransferRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    CANCELLED = "cancelled"


TRANSFER_REQUEST_TRANSITIONS: Dict[str, Set[str]] = {
    TransferRequestStatus.PENDING: {
        TransferRequestStatus.APPROVED,
        TransferRequestStatus.CANCELLED,
    },
    TransferRequestStatus.APPROVED: {
        TransferRequestStatus.IN_TRANSIT,
        TransferRequestStatus.CANCELLED,
    },
    TransferRequestStatus.IN_TRANSIT: {
        TransferRequestStatus.RECEIVED,
    },
    TransferRequestStatus.RECEIVED: set(),  # Terminal
    TransferRequestStatus.CANCELLED: set(),  # Terminal
}


# =============================================================================
# Purchase Order Status
# =============================================================================

class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CLOSED = "closed"
    CANCELLED = "cancelled"


PURCHASE_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    PurchaseOrderStatus.DRAFT: {
        PurchaseOrderStatus.PENDING_APPROVAL,
        PurchaseOrderStatus.SENT,
        PurchaseOrderStatus.CANCELLED,
    },
    PurchaseOrderStatus.PENDING_APPROVAL: {
        PurchaseOrderStatus.SENT,
        PurchaseOrderStatus.CANCELLED,
    },
    PurchaseOrderStatus.SENT: {
        PurchaseOrderStatus.ACKNOWLEDGED,
        PurchaseOrderStatus.PARTIALLY_RECEIVED,
        PurchaseOrderStatus.RECEIVED,
        PurchaseOrderStatus.CANCELLED,
    },
    PurchaseOrderStatus.ACKNOWLEDGED: {
        PurchaseOrderStatus.PARTIALLY_RECEIVED,
        PurchaseOrderStatus.RECEIVED,
        PurchaseOrderStatus.CANCELLED,
    },
    PurchaseOrderStatus.PARTIALLY_RECEIVED: {
        PurchaseOrderStatus.RECEIVED,
    },
    PurchaseOrderStatus.RECEIVED: {
        PurchaseOrderStatus.CLOSED,
    },
    PurchaseOrderStatus.CLOSED: set(),  # Terminal
    PurchaseOrderStatus.CANCELLED: set(),  # Terminal
}

# Purchase orders still bringing stock in
OPEN_PURCHASE_ORDER_STATUSES: Set[str] = {
    PurchaseOrderStatus.DRAFT.value,
    PurchaseOrderStatus.PENDING_APPROVAL.value,
    PurchaseOrderStatus.SENT.value,
    PurchaseOrderStatus.ACKNOWLEDGED.value,
    PurchaseOrderStatus.PARTIALLY_RECEIVED.value,
}


# =============================================================================
# Validation Helpers
# =============================================================================

def _by_value(table: Dict[str, Set[str]]) -> Dict[str, Set[str]]:
    # Enum members hash by name; the database hands back plain strings
    return {
        getattr(k, "value", k): {getattr(s, "value", s) for s in targets}
        for k, targets in table.items()
    }


TRANSITIONS_BY_ENTITY: Dict[str, Dict[str, Set[str]]] = {
    "sales order": _by_value(SALES_ORDER_TRANSITIONS),
    "picking slip": _by_value(PICKING_SLIP_TRANSITIONS),
    "job card": _by_value(JOB_CARD_TRANSITIONS),
    "transfer request": _by_value(TRANSFER_REQUEST_TRANSITIONS),
    "purchase order": _by_value(PURCHASE_ORDER_TRANSITIONS),
}


class StatusTransitionError(Exception):
    """Raised when an invalid status transition is attempted"""
    def __init__(self, entity: str, current: str, requested: str, allowed: List[str]):
        self.entity = entity
        self.current = current
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Invalid {entity} status transition: '{current}' -> '{requested}'. "
            f"Allowed: {allowed if allowed else 'none (terminal state)'}"
        )


def get_allowed_transitions(entity: str, current_status: str) -> List[str]:
    """Sorted list of statuses reachable from current_status"""
    current = getattr(current_status, "value", current_status)
    return sorted(TRANSITIONS_BY_ENTITY[entity].get(current, set()))


def is_valid_transition(entity: str, current_status: str, new_status: str) -> bool:
    current = getattr(current_status, "value", current_status)
    new = getattr(new_status, "value", new_status)
    if current == new:
        return True  # No change is always valid
    return new in TRANSITIONS_BY_ENTITY[entity].get(current, set())


def validate_transition(entity: str, current: str, new: str) -> None:
    """Validate and raise error if transition is invalid"""
    if not is_valid_transition(entity, current, new):
        raise StatusTransitionError(
            entity,
            current,
            new,
            get_allowed_transitions(entity, current),
        )
