"""
Inventory Service

The only writer of StockLevel. Handles:
- Receipts and adjustments
- Soft/hard reservations for fulfillment documents
- Releasing, converting and consuming reservations

Reservations are a single conditional UPDATE: the availability check
and the increment happen in one statement, so two transactions can't
both reserve the same surplus.

Functions here do NOT commit - the caller owns the transaction.
"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.exceptions import BusinessRuleError, ReservationConflictError, ValidationError
from app.logging_config import get_logger
from app.models import InventoryTransaction, StockLevel, StockReservation
from app.services.inventory_helpers import ZERO, to_quantity

logger = get_logger(__name__)


def get_stock_level(db: Session, product_id: int, warehouse_id: int) -> Optional[StockLevel]:
    return db.query(StockLevel).filter(
        StockLevel.product_id == product_id,
        StockLevel.warehouse_id == warehouse_id,
    ).first()


def get_or_create_stock_level(db: Session, product_id: int, warehouse_id: int) -> StockLevel:
    """Get or create the stock row for a product at a warehouse."""
    level = get_stock_level(db, product_id, warehouse_id)
    if level is None:
        level = StockLevel(
            product_id=product_id,
            warehouse_id=warehouse_id,
            on_hand=ZERO,
            soft_reserved=ZERO,
            hard_reserved=ZERO,
            on_order=ZERO,
            reorder_point=ZERO,
            reorder_quantity=ZERO,
            version=1,
        )
        db.add(level)
        db.flush()
    return level


def create_inventory_transaction(
    db: Session,
    product_id: int,
    warehouse_id: int,
    transaction_type: str,
    quantity: Decimal,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> InventoryTransaction:
    """Write the audit row for a movement. Quantities are not touched here."""
    transaction = InventoryTransaction(
        product_id=product_id,
        warehouse_id=warehouse_id,
        transaction_type=transaction_type,
        quantity=to_quantity(quantity),
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )
    db.add(transaction)
    return transaction


def _bump(level: StockLevel) -> None:
    level.version = (level.version or 0) + 1
    level.updated_at = datetime.utcnow()


# ============================================================================
# Receipts and adjustments
# ============================================================================

def receive_stock(
    db: Session,
    product_id: int,
    warehouse_id: int,
    quantity: Decimal,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    from_purchase_order: bool = False,
    created_by: Optional[str] = None,
    notes: Optional[str] = None,
    transaction_type: str = "receipt",
) -> StockLevel:
    """Add stock on hand. Receipts against a PO also reduce on_order."""
    quantity = to_quantity(quantity)
    if quantity <= ZERO:
        raise ValidationError("Receipt quantity must be positive", field="quantity", value=quantity)

    level = get_or_create_stock_level(db, product_id, warehouse_id)
    level.on_hand = to_quantity(level.on_hand) + quantity
    if from_purchase_order:
        level.on_order = max(to_quantity(level.on_order) - quantity, ZERO)
    _bump(level)

    create_inventory_transaction(
        db, product_id, warehouse_id, transaction_type, quantity,
        reference_type=reference_type, reference_id=reference_id,
        notes=notes, created_by=created_by,
    )
    logger.info(
        "Stock received",
        extra={"product_id": product_id, "warehouse_id": warehouse_id, "quantity": str(quantity)},
    )
    return level


def adjust_stock(
    db: Session,
    product_id: int,
    warehouse_id: int,
    delta: Decimal,
    reason: str,
    created_by: Optional[str] = None,
) -> StockLevel:
    """
    Apply a signed adjustment to on hand.

    Refuses anything that would leave reserved stock uncovered, since
    that would make available negative.
    """
    delta = to_quantity(delta)
    level = get_or_create_stock_level(db, product_id, warehouse_id)
    new_on_hand = to_quantity(level.on_hand) + delta
    reserved = to_quantity(level.soft_reserved) + to_quantity(level.hard_reserved)
    if new_on_hand < reserved:
        raise BusinessRuleError(
            f"Adjustment would leave on hand ({new_on_hand}) below reserved ({reserved})",
            rule="non_negative_available",
            details={"product_id": product_id, "warehouse_id": warehouse_id},
        )

    level.on_hand = new_on_hand
    _bump(level)
    create_inventory_transaction(
        db, product_id, warehouse_id, "adjustment", delta,
        reference_type="adjustment", notes=reason, created_by=created_by,
    )
    return level


def set_reorder_levels(
    db: Session,
    product_id: int,
    warehouse_id: int,
    reorder_point: Decimal,
    reorder_quantity: Decimal = ZERO,
    maximum_stock: Optional[Decimal] = None,
) -> StockLevel:
    reorder_point = to_quantity(reorder_point)
    reorder_quantity = to_quantity(reorder_quantity)
    if reorder_point < ZERO or reorder_quantity < ZERO:
        raise ValidationError("Reorder levels can't be negative")

    level = get_or_create_stock_level(db, product_id, warehouse_id)
    level.reorder_point = reorder_point
    level.reorder_quantity = reorder_quantity
    level.maximum_stock = to_quantity(maximum_stock) if maximum_stock is not None else None
    _bump(level)
    return level


def add_on_order(db: Session, product_id: int, warehouse_id: int, quantity: Decimal) -> StockLevel:
    """Record stock coming in on a purchase order (negative to take it off)."""
    level = get_or_create_stock_level(db, product_id, warehouse_id)
    level.on_order = max(to_quantity(level.on_order) + to_quantity(quantity), ZERO)
    _bump(level)
    return level


# ============================================================================
# Reservations
# ============================================================================

def reserve_stock(
    db: Session,
    product_id: int,
    warehouse_id: int,
    quantity: Decimal,
    reference_type: str,
    reference_id: int,
    reservation_type: str = "soft",
    order_id: Optional[int] = None,
    wave_id: Optional[int] = None,
    document: Optional[str] = None,
    created_by: Optional[str] = None,
) -> StockReservation:
    """
    Reserve stock for a document.

    The availability check is part of the UPDATE itself. If no row
    matches, the request is rejected with ReservationConflictError and
    nothing changes; requests are never clamped to what is available.
    """
    quantity = to_quantity(quantity)
    if quantity <= ZERO:
        raise ValidationError("Reservation quantity must be positive", field="quantity", value=quantity)
    if reservation_type not in ("soft", "hard"):
        raise ValidationError("Reservation type must be soft or hard", field="reservation_type", value=reservation_type)

    # Pending ORM changes must reach the row before the conditional UPDATE
    db.flush()
    column = StockLevel.soft_reserved if reservation_type == "soft" else StockLevel.hard_reserved
    stmt = (
        update(StockLevel)
        .where(
            StockLevel.product_id == product_id,
            StockLevel.warehouse_id == warehouse_id,
            StockLevel.on_hand - StockLevel.soft_reserved - StockLevel.hard_reserved >= quantity,
        )
        .values({
            column: column + quantity,
            StockLevel.version: StockLevel.version + 1,
            StockLevel.updated_at: datetime.utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)

    level = get_stock_level(db, product_id, warehouse_id)
    if level is not None:
        # The UPDATE bypassed the identity map
        db.refresh(level)

    if result.rowcount != 1:
        available = to_quantity(level.available) if level is not None else to_quantity(ZERO)
        logger.warning(
            "Reservation rejected",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "requested": str(quantity),
                "available": str(available),
                "document": document,
            },
        )
        raise ReservationConflictError(
            product_id=product_id,
            warehouse_id=warehouse_id,
            requested=quantity,
            available=available,
            document=document,
        )

    reservation = StockReservation(
        product_id=product_id,
        warehouse_id=warehouse_id,
        reservation_type=reservation_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        order_id=order_id,
        wave_id=wave_id,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )
    db.add(reservation)
    create_inventory_transaction(
        db, product_id, warehouse_id, "reservation", quantity,
        reference_type=reference_type, reference_id=reference_id,
        notes=f"{reservation_type} reservation" + (f" for {document}" if document else ""),
        created_by=created_by,
    )
    db.flush()
    return reservation


def open_reservations(
    db: Session, reference_type: str, reference_ids: Iterable[int]
) -> List[StockReservation]:
    ids = list(reference_ids)
    if not ids:
        return []
    return db.query(StockReservation).filter(
        StockReservation.reference_type == reference_type,
        StockReservation.reference_id.in_(ids),
        StockReservation.released_at.is_(None),
    ).order_by(StockReservation.id).all()


def _take_reserved(level: StockLevel, reservation: StockReservation) -> None:
    quantity = to_quantity(reservation.quantity)
    if reservation.reservation_type == "hard":
        level.hard_reserved = max(to_quantity(level.hard_reserved) - quantity, ZERO)
    else:
        level.soft_reserved = max(to_quantity(level.soft_reserved) - quantity, ZERO)


def release_reservation(
    db: Session,
    reservation: StockReservation,
    reason: str = "released",
    created_by: Optional[str] = None,
) -> None:
    """Give reserved stock back to available."""
    if reservation.released_at is not None:
        return

    level = get_or_create_stock_level(db, reservation.product_id, reservation.warehouse_id)
    _take_reserved(level, reservation)
    _bump(level)
    reservation.released_at = datetime.utcnow()
    reservation.release_reason = reason

    create_inventory_transaction(
        db, reservation.product_id, reservation.warehouse_id, "release", reservation.quantity,
        reference_type=reservation.reference_type, reference_id=reservation.reference_id,
        notes=reason, created_by=created_by,
    )


def release_reservations_for(
    db: Session,
    reference_type: str,
    reference_ids: Iterable[int],
    reason: str = "released",
    created_by: Optional[str] = None,
) -> int:
    """Release every open reservation held by the given references."""
    reservations = open_reservations(db, reference_type, reference_ids)
    for reservation in reservations:
        release_reservation(db, reservation, reason=reason, created_by=created_by)
    return len(reservations)


def convert_reservations_to_hard(
    db: Session,
    reference_type: str,
    reference_ids: Iterable[int],
    created_by: Optional[str] = None,
) -> int:
    """Lock soft reservations once the stock has physically been picked."""
    converted = 0
    for reservation in open_reservations(db, reference_type, reference_ids):
        if reservation.reservation_type != "soft":
            continue
        quantity = to_quantity(reservation.quantity)
        level = get_or_create_stock_level(db, reservation.product_id, reservation.warehouse_id)
        level.soft_reserved = max(to_quantity(level.soft_reserved) - quantity, ZERO)
        level.hard_reserved = to_quantity(level.hard_reserved) + quantity
        _bump(level)
        reservation.reservation_type = "hard"

        create_inventory_transaction(
            db, reservation.product_id, reservation.warehouse_id, "reservation_convert", quantity,
            reference_type=reservation.reference_type, reference_id=reservation.reference_id,
            notes="soft -> hard", created_by=created_by,
        )
        converted += 1
    return converted


def consume_reservations(
    db: Session,
    reference_type: str,
    reference_ids: Iterable[int],
    limit: Optional[Decimal] = None,
    transaction_type: str = "issue",
    created_by: Optional[str] = None,
) -> Decimal:
    """
    Issue reserved stock: it leaves on hand together with its reservation.

    With a limit, stops once that much has been issued (a reservation
    that straddles the limit is split). Returns the quantity issued.
    """
    issued = ZERO
    remaining = to_quantity(limit) if limit is not None else None
    for reservation in open_reservations(db, reference_type, reference_ids):
        if remaining is not None and remaining <= ZERO:
            break

        quantity = to_quantity(reservation.quantity)
        if remaining is not None and quantity > remaining:
            # Keep the rest reserved under a new row
            leftover = StockReservation(
                product_id=reservation.product_id,
                warehouse_id=reservation.warehouse_id,
                reservation_type=reservation.reservation_type,
                quantity=quantity - remaining,
                reference_type=reservation.reference_type,
                reference_id=reservation.reference_id,
                order_id=reservation.order_id,
                wave_id=reservation.wave_id,
                created_by=reservation.created_by,
                created_at=datetime.utcnow(),
            )
            db.add(leftover)
            reservation.quantity = remaining
            quantity = remaining

        level = get_or_create_stock_level(db, reservation.product_id, reservation.warehouse_id)
        _take_reserved(level, reservation)
        level.on_hand = max(to_quantity(level.on_hand) - quantity, ZERO)
        _bump(level)
        reservation.released_at = datetime.utcnow()
        reservation.release_reason = "consumed"

        create_inventory_transaction(
            db, reservation.product_id, reservation.warehouse_id, transaction_type, quantity,
            reference_type=reservation.reference_type, reference_id=reservation.reference_id,
            created_by=created_by,
        )
        issued += quantity
        if remaining is not None:
            remaining -= quantity
    return to_quantity(issued)
