"""
Fulfillment Document Service

Creates picking slips, job cards, transfer requests and purchase orders
from plan specs, and moves them through their lifecycles.

Status changes carry stock effects:
- picking slip complete   -> soft reservations become hard, lines picked
- picking slip cancelled  -> reservations released
- job card complete       -> components issued, finished goods received
                             and held for the order
- job card cancelled      -> component reservations released
- transfer received       -> stock leaves the source, arrives held for
                             the order at the destination
- purchase order received -> stock received, on order reduced
- purchase order cancelled-> on order reduced

Every transition recomputes the order's derived status.

The create_* factories do NOT commit - the plan executor owns that
transaction. transition() commits its own.
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Type

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.status_config import (
    JobCardStatus,
    PickingSlipStatus,
    PurchaseOrderStatus,
    StatusTransitionError,
    TransferRequestStatus,
    validate_transition,
)
from app.exceptions import DependencyError, InvalidStateError, NotFoundError
from app.logging_config import get_logger
from app.models import (
    FulfillmentWave,
    JobCard,
    JobCardComponent,
    JobCardLine,
    PickingSlip,
    PickingSlipLine,
    PurchaseOrder,
    PurchaseOrderLine,
    SalesOrder,
    SalesOrderLine,
    TransferRequest,
    TransferRequestLine,
)
from app.schemas.orchestration import (
    DocumentTransitionResponse,
    DocumentType,
    JobCardPlan,
    PickingSlipPlan,
    PurchaseOrderPlan,
    TransferPlan,
)
from app.services import inventory_service
from app.services.inventory_helpers import ZERO, to_quantity
from app.services.order_status import OrderStatusService

logger = get_logger(__name__)

# document type -> (model, number prefix, status_config entity)
DOCUMENT_TYPES: Dict[DocumentType, Tuple[Type, str, str]] = {
    DocumentType.PICKING_SLIP: (PickingSlip, "PS", "picking slip"),
    DocumentType.JOB_CARD: (JobCard, "JC", "job card"),
    DocumentType.TRANSFER_REQUEST: (TransferRequest, "TR", "transfer request"),
    DocumentType.PURCHASE_ORDER: (PurchaseOrder, "PO", "purchase order"),
}


# ============================================================================
# Numbering
# ============================================================================

def next_document_number(db: Session, model: Type, prefix: str) -> str:
    """
    Next number in the PREFIX-YYYY-NNNNN sequence.

    Locks the current highest row so concurrent executions queue up
    instead of minting the same number; the unique constraint on
    number backs this up where the database can't lock.
    """
    year = datetime.utcnow().year
    last = (
        db.query(model)
        .filter(model.number.like(f"{prefix}-{year}-%"))
        .order_by(desc(model.number))
        .with_for_update()
        .first()
    )
    next_num = 1
    if last:
        try:
            next_num = int(last.number.split("-")[2]) + 1
        except (IndexError, ValueError):
            logger.warning("Unparseable document number", extra={"number": last.number})
    return f"{prefix}-{year}-{next_num:05d}"


# ============================================================================
# Factories
# ============================================================================

def create_picking_slip(
    db: Session,
    order: SalesOrder,
    wave: FulfillmentWave,
    spec: PickingSlipPlan,
    created_by: Optional[str] = None,
) -> PickingSlip:
    slip = PickingSlip(
        number=next_document_number(db, PickingSlip, "PS"),
        order_id=order.id,
        wave_id=wave.id,
        warehouse_id=spec.warehouse_id,
        status=PickingSlipStatus.PENDING.value,
        is_transfer_source=spec.is_transfer_source,
        created_by=created_by,
    )
    for line in spec.lines:
        slip.lines.append(PickingSlipLine(
            order_line_id=line.order_line_id,
            line_number=line.line_number,
            product_id=line.product_id,
            quantity_to_pick=line.quantity,
            quantity_picked=ZERO,
            transfer_to_warehouse_id=line.transfer_to_warehouse_id,
        ))
    db.add(slip)
    db.flush()
    return slip


def create_job_card(
    db: Session,
    order: SalesOrder,
    wave: FulfillmentWave,
    spec: JobCardPlan,
    created_by: Optional[str] = None,
) -> JobCard:
    card = JobCard(
        number=next_document_number(db, JobCard, "JC"),
        order_id=order.id,
        wave_id=wave.id,
        product_id=spec.product_id,
        warehouse_id=spec.warehouse_id,
        job_type=spec.job_type.value,
        quantity=spec.quantity,
        status=JobCardStatus.PENDING.value,
        created_by=created_by,
    )
    for line in spec.order_lines:
        card.lines.append(JobCardLine(
            order_line_id=line.order_line_id,
            line_number=line.line_number,
            quantity=line.quantity,
        ))
    for component in spec.components:
        card.components.append(JobCardComponent(
            product_id=component.product_id,
            quantity_required=component.quantity_required,
            quantity_reserved=ZERO,
            shortfall=component.shortfall,
            is_optional=component.is_optional,
        ))
    db.add(card)
    db.flush()
    return card


def create_transfer_request(
    db: Session,
    order: SalesOrder,
    wave: FulfillmentWave,
    spec: TransferPlan,
    picking_slip_id: Optional[int] = None,
    created_by: Optional[str] = None,
) -> TransferRequest:
    transfer = TransferRequest(
        number=next_document_number(db, TransferRequest, "TR"),
        order_id=order.id,
        wave_id=wave.id,
        from_warehouse_id=spec.from_warehouse_id,
        to_warehouse_id=spec.to_warehouse_id,
        picking_slip_id=picking_slip_id,
        status=TransferRequestStatus.PENDING.value,
        created_by=created_by,
    )
    for line in spec.lines:
        transfer.lines.append(TransferRequestLine(
            order_line_id=line.order_line_id,
            line_number=line.line_number,
            product_id=line.product_id,
            quantity=line.quantity,
            quantity_received=ZERO,
            from_job_card=line.from_job_card,
        ))
    db.add(transfer)
    db.flush()
    return transfer


def create_purchase_order(
    db: Session,
    order: SalesOrder,
    wave: FulfillmentWave,
    spec: PurchaseOrderPlan,
    created_by: Optional[str] = None,
) -> PurchaseOrder:
    """Create a draft PO and book its quantities as on order."""
    po = PurchaseOrder(
        number=next_document_number(db, PurchaseOrder, "PO"),
        supplier_id=spec.supplier_id,
        order_id=order.id,
        wave_id=wave.id,
        reason=spec.reason.value,
        currency=spec.currency,
        status=PurchaseOrderStatus.DRAFT.value,
        created_by=created_by,
    )
    total = ZERO
    for number, line in enumerate(spec.lines, start=1):
        po.lines.append(PurchaseOrderLine(
            line_number=number,
            product_id=line.product_id,
            warehouse_id=line.warehouse_id,
            quantity=line.quantity,
            quantity_received=ZERO,
            unit_cost=line.estimated_unit_cost,
            source_type=line.source_type.value,
            source_id=line.source_id,
        ))
        if line.estimated_unit_cost is not None:
            total += line.quantity * line.estimated_unit_cost
        inventory_service.add_on_order(db, line.product_id, line.warehouse_id, line.quantity)
    po.total_amount = to_quantity(total)
    db.add(po)
    db.flush()
    return po


# ============================================================================
# Lifecycles
# ============================================================================

class DocumentService:
    """Status transitions for fulfillment documents"""

    def __init__(self, db: Session):
        self.db = db

    def get_document(self, document_type: DocumentType, document_id: int):
        model = DOCUMENT_TYPES[document_type][0]
        document = self.db.query(model).filter(model.id == document_id).first()
        if document is None:
            raise NotFoundError(model.__name__, document_id)
        return document

    def transition(
        self,
        document_type: DocumentType,
        document_id: int,
        new_status: str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DocumentTransitionResponse:
        _, _, entity = DOCUMENT_TYPES[document_type]
        document = self.get_document(document_type, document_id)
        old_status = document.status

        try:
            validate_transition(entity, old_status, new_status)
        except StatusTransitionError as e:
            raise InvalidStateError(
                str(e), current_state=old_status, allowed_states=e.allowed
            ) from e

        try:
            if new_status != old_status:
                handler = getattr(self, f"_on_{document_type.value}", None)
                if handler is not None:
                    handler(document, new_status, actor)
                document.status = new_status
                document.updated_at = datetime.utcnow()
                if notes:
                    document.notes = f"{document.notes}\n{notes}" if document.notes else notes

            order = self.db.query(SalesOrder).filter(SalesOrder.id == document.order_id).first()
            _, order_status = OrderStatusService(self.db).recompute(order, actor=actor)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Document transition failed",
                exc_info=True,
                extra={"document_type": document_type.value, "document_id": document_id},
            )
            raise DependencyError("database", str(e)) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"{entity} {document.number}: {old_status} -> {new_status}",
            extra={"document_id": document.id, "order_id": order.id, "actor": actor},
        )
        return DocumentTransitionResponse(
            document_type=document_type,
            document_id=document.id,
            number=document.number,
            status=document.status,
            order_id=order.id,
            order_status=order_status,
        )

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _on_picking_slip(self, slip: PickingSlip, new_status: str, actor: Optional[str]) -> None:
        line_ids = [line.id for line in slip.lines]
        if new_status == PickingSlipStatus.COMPLETE.value:
            inventory_service.convert_reservations_to_hard(
                self.db, "picking_slip_line", line_ids, created_by=actor
            )
            for line in slip.lines:
                line.quantity_picked = line.quantity_to_pick
                if line.transfer_to_warehouse_id is None:
                    order_line = self.db.query(SalesOrderLine).filter(
                        SalesOrderLine.id == line.order_line_id
                    ).first()
                    order_line.quantity_picked = to_quantity(order_line.quantity_picked) + to_quantity(line.quantity_to_pick)
            slip.completed_at = datetime.utcnow()
        elif new_status == PickingSlipStatus.CANCELLED.value:
            inventory_service.release_reservations_for(
                self.db, "picking_slip_line", line_ids,
                reason=f"{slip.number} cancelled", created_by=actor,
            )

    def _on_job_card(self, card: JobCard, new_status: str, actor: Optional[str]) -> None:
        component_ids = [c.id for c in card.components]
        if new_status == JobCardStatus.COMPLETE.value:
            inventory_service.consume_reservations(
                self.db, "job_card_component", component_ids,
                transaction_type="consumption", created_by=actor,
            )
            inventory_service.receive_stock(
                self.db, card.product_id, card.warehouse_id, card.quantity,
                reference_type="job_card", reference_id=card.id,
                created_by=actor, transaction_type="production",
                notes=f"Built on {card.number}",
            )
            # Built for this order, don't let the next plan give it away
            inventory_service.reserve_stock(
                self.db, card.product_id, card.warehouse_id, card.quantity,
                reference_type="job_card", reference_id=card.id,
                reservation_type="hard", order_id=card.order_id, wave_id=card.wave_id,
                document=card.number, created_by=actor,
            )
            card.completed_at = datetime.utcnow()
        elif new_status == JobCardStatus.CANCELLED.value:
            inventory_service.release_reservations_for(
                self.db, "job_card_component", component_ids,
                reason=f"{card.number} cancelled", created_by=actor,
            )
            for component in card.components:
                component.quantity_reserved = ZERO

    def _on_transfer_request(self, transfer: TransferRequest, new_status: str, actor: Optional[str]) -> None:
        if new_status != TransferRequestStatus.RECEIVED.value:
            return

        for line in transfer.lines:
            reference_type, reference_ids = self._transfer_source(transfer, line)
            inventory_service.consume_reservations(
                self.db, reference_type, reference_ids, limit=line.quantity,
                transaction_type="transfer_out", created_by=actor,
            )
            inventory_service.receive_stock(
                self.db, line.product_id, transfer.to_warehouse_id, line.quantity,
                reference_type="transfer_request_line", reference_id=line.id,
                created_by=actor, transaction_type="transfer_in",
                notes=f"Received on {transfer.number}",
            )
            inventory_service.reserve_stock(
                self.db, line.product_id, transfer.to_warehouse_id, line.quantity,
                reference_type="transfer_request_line", reference_id=line.id,
                reservation_type="hard", order_id=transfer.order_id, wave_id=transfer.wave_id,
                document=transfer.number, created_by=actor,
            )
            line.quantity_received = line.quantity
        transfer.received_at = datetime.utcnow()

    def _transfer_source(self, transfer: TransferRequest, line: TransferRequestLine) -> Tuple[str, List[int]]:
        """Which reservations at the source warehouse the line ships"""
        if line.from_job_card:
            ids = [
                row[0] for row in self.db.query(JobCard.id).join(
                    JobCardLine, JobCardLine.job_card_id == JobCard.id
                ).filter(
                    JobCard.order_id == transfer.order_id,
                    JobCard.warehouse_id == transfer.from_warehouse_id,
                    JobCardLine.order_line_id == line.order_line_id,
                ).all()
            ]
            return "job_card", ids

        query = self.db.query(PickingSlipLine.id).join(
            PickingSlip, PickingSlip.id == PickingSlipLine.picking_slip_id
        ).filter(
            PickingSlip.order_id == transfer.order_id,
            PickingSlip.warehouse_id == transfer.from_warehouse_id,
            PickingSlipLine.order_line_id == line.order_line_id,
            PickingSlipLine.transfer_to_warehouse_id == transfer.to_warehouse_id,
        )
        if transfer.picking_slip_id is not None:
            query = query.filter(PickingSlip.id == transfer.picking_slip_id)
        return "picking_slip_line", [row[0] for row in query.all()]

    def _on_purchase_order(self, po: PurchaseOrder, new_status: str, actor: Optional[str]) -> None:
        if new_status == PurchaseOrderStatus.RECEIVED.value:
            for line in po.lines:
                outstanding = to_quantity(line.quantity) - to_quantity(line.quantity_received)
                if outstanding <= ZERO:
                    continue
                inventory_service.receive_stock(
                    self.db, line.product_id, line.warehouse_id, outstanding,
                    reference_type="purchase_order_line", reference_id=line.id,
                    from_purchase_order=True, created_by=actor,
                    notes=f"Received on {po.number}",
                )
                line.quantity_received = line.quantity
        elif new_status == PurchaseOrderStatus.CANCELLED.value:
            for line in po.lines:
                outstanding = to_quantity(line.quantity) - to_quantity(line.quantity_received)
                if outstanding > ZERO:
                    inventory_service.add_on_order(self.db, line.product_id, line.warehouse_id, -outstanding)
