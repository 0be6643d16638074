"""
Order Status Management Service

Derives a sales order's fulfillment status from the documents created
for it. The status is never tracked separately: every call recomputes
it from document states, so it can't drift.

- no live documents            -> confirmed
- at least one live document   -> processing
- every line covered by completed picks, received transfers or
  completed job cards          -> ready_to_ship

Only statuses in DERIVED_ORDER_STATUSES are touched. Shipping,
holds and cancellation belong to other parts of the system.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.status_config import (
    DERIVED_ORDER_STATUSES,
    JobCardStatus,
    PickingSlipStatus,
    PurchaseOrderStatus,
    SalesOrderStatus,
    TransferRequestStatus,
    is_valid_transition,
)
from app.logging_config import get_logger
from app.models import (
    JobCard,
    JobCardLine,
    PickingSlip,
    PickingSlipLine,
    PurchaseOrder,
    SalesOrder,
    TransferRequest,
    TransferRequestLine,
)
from app.services.inventory_helpers import ZERO, to_quantity

logger = get_logger(__name__)


@dataclass
class OrderDocumentState:
    """What the order's documents add up to"""
    live_documents: int = 0
    ready_by_line: Dict[int, Decimal] = field(default_factory=dict)


def derive_order_status(
    current_status: str,
    quantities_ordered: Dict[int, Decimal],
    state: OrderDocumentState,
) -> str:
    """Pure status derivation; see module docstring."""
    if current_status not in DERIVED_ORDER_STATUSES:
        return current_status
    if state.live_documents == 0:
        return SalesOrderStatus.CONFIRMED.value
    if quantities_ordered and all(
        state.ready_by_line.get(line_id, ZERO) >= quantity
        for line_id, quantity in quantities_ordered.items()
    ):
        return SalesOrderStatus.READY_TO_SHIP.value
    return SalesOrderStatus.PROCESSING.value


class OrderStatusService:
    """Loads document states for an order and applies the derived status."""

    def __init__(self, db: Session):
        self.db = db

    def document_state(self, order: SalesOrder) -> OrderDocumentState:
        db = self.db
        state = OrderDocumentState()

        for model, cancelled in (
            (PickingSlip, PickingSlipStatus.CANCELLED.value),
            (JobCard, JobCardStatus.CANCELLED.value),
            (TransferRequest, TransferRequestStatus.CANCELLED.value),
            (PurchaseOrder, PurchaseOrderStatus.CANCELLED.value),
        ):
            state.live_documents += db.query(func.count(model.id)).filter(
                model.order_id == order.id,
                model.status != cancelled,
            ).scalar() or 0

        ready: Dict[int, Decimal] = defaultdict(lambda: ZERO)

        # Direct picks on completed slips
        picks = db.query(PickingSlipLine.order_line_id, func.sum(PickingSlipLine.quantity_picked)).join(
            PickingSlip, PickingSlip.id == PickingSlipLine.picking_slip_id
        ).filter(
            PickingSlip.order_id == order.id,
            PickingSlip.status == PickingSlipStatus.COMPLETE.value,
            PickingSlipLine.transfer_to_warehouse_id.is_(None),
        ).group_by(PickingSlipLine.order_line_id).all()
        for line_id, quantity in picks:
            ready[line_id] += to_quantity(quantity)

        # Stock that arrived on received transfers
        received = db.query(TransferRequestLine.order_line_id, func.sum(TransferRequestLine.quantity_received)).join(
            TransferRequest, TransferRequest.id == TransferRequestLine.transfer_request_id
        ).filter(
            TransferRequest.order_id == order.id,
            TransferRequest.status == TransferRequestStatus.RECEIVED.value,
            TransferRequestLine.order_line_id.isnot(None),
        ).group_by(TransferRequestLine.order_line_id).all()
        for line_id, quantity in received:
            ready[line_id] += to_quantity(quantity)

        # Completed job cards built where the line ships from
        targets = {line.id: line.warehouse_id or order.warehouse_id for line in order.lines}
        built = db.query(JobCardLine.order_line_id, JobCard.warehouse_id, JobCardLine.quantity).join(
            JobCard, JobCard.id == JobCardLine.job_card_id
        ).filter(
            JobCard.order_id == order.id,
            JobCard.status == JobCardStatus.COMPLETE.value,
        ).all()
        for line_id, warehouse_id, quantity in built:
            if targets.get(line_id) == warehouse_id:
                ready[line_id] += to_quantity(quantity)

        state.ready_by_line = dict(ready)
        return state

    def derive(self, order: SalesOrder) -> str:
        quantities = {line.id: to_quantity(line.quantity_ordered) for line in order.lines}
        return derive_order_status(order.status, quantities, self.document_state(order))

    def recompute(self, order: SalesOrder, actor: Optional[str] = None) -> Tuple[bool, str]:
        """
        Apply the derived status to the order.

        Does NOT commit. Returns (changed, status).
        """
        self.db.flush()
        old_status = order.status
        new_status = self.derive(order)
        if new_status == old_status:
            return False, old_status

        if not is_valid_transition("sales order", old_status, new_status):
            logger.warning(
                "Derived order status not reachable, leaving as is",
                extra={"order_id": order.id, "from_status": old_status, "to_status": new_status},
            )
            return False, old_status

        order.status = new_status
        order.updated_at = datetime.utcnow()
        logger.info(
            f"SO {order.order_number}: {old_status} -> {new_status}",
            extra={"order_id": order.id, "actor": actor},
        )
        return True, new_status
