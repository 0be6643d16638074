"""
Stock Availability Resolver

Read-only view of StockLevel rows as StockSnapshots. Missing rows are
zero stock, never an error. Batch lookups run as one query so a plan is
computed from a single consistent read.
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models import StockLevel
from app.schemas.orchestration import StockSnapshot, StockStatus
from app.services.inventory_helpers import ZERO, to_quantity
from app.logging_config import get_logger

logger = get_logger(__name__)

StockKey = Tuple[int, int]  # (product_id, warehouse_id)


def compute_stock_status(
    on_hand: Decimal,
    available: Decimal,
    on_order: Decimal,
    reorder_point: Decimal,
    maximum_stock: Optional[Decimal] = None,
) -> StockStatus:
    """
    Classify a stock position.

    Checked in order: nothing available but stock incoming is ON_ORDER,
    nothing available is OUT_OF_STOCK, more on hand than the configured
    maximum is OVERSTOCK, at or under the reorder point is LOW_STOCK.
    """
    if available <= ZERO and on_order > ZERO:
        return StockStatus.ON_ORDER
    if available <= ZERO:
        return StockStatus.OUT_OF_STOCK
    if maximum_stock is not None and maximum_stock > ZERO and on_hand > maximum_stock:
        return StockStatus.OVERSTOCK
    if reorder_point > ZERO and available <= reorder_point:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def snapshot_from_level(level: StockLevel) -> StockSnapshot:
    on_hand = to_quantity(level.on_hand)
    soft = to_quantity(level.soft_reserved)
    hard = to_quantity(level.hard_reserved)
    on_order = to_quantity(level.on_order)
    reorder_point = to_quantity(level.reorder_point)
    maximum = to_quantity(level.maximum_stock) if level.maximum_stock is not None else None
    available = on_hand - soft - hard
    return StockSnapshot(
        product_id=level.product_id,
        warehouse_id=level.warehouse_id,
        on_hand=on_hand,
        soft_reserved=soft,
        hard_reserved=hard,
        available=available,
        on_order=on_order,
        reorder_point=reorder_point,
        reorder_quantity=to_quantity(level.reorder_quantity),
        maximum_stock=maximum,
        stock_status=compute_stock_status(on_hand, available, on_order, reorder_point, maximum),
    )


def empty_snapshot(product_id: int, warehouse_id: int) -> StockSnapshot:
    zero = to_quantity(ZERO)
    return StockSnapshot(
        product_id=product_id,
        warehouse_id=warehouse_id,
        on_hand=zero,
        soft_reserved=zero,
        hard_reserved=zero,
        available=zero,
        on_order=zero,
        reorder_point=zero,
        reorder_quantity=zero,
        stock_status=StockStatus.OUT_OF_STOCK,
    )


class StockResolver:
    """Resolves stock snapshots for (product, warehouse) pairs"""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, product_id: int, warehouse_id: int) -> StockSnapshot:
        level = self.db.query(StockLevel).filter(
            StockLevel.product_id == product_id,
            StockLevel.warehouse_id == warehouse_id,
        ).first()
        if level is None:
            return empty_snapshot(product_id, warehouse_id)
        return snapshot_from_level(level)

    def resolve_many(self, pairs: Iterable[StockKey]) -> Dict[StockKey, StockSnapshot]:
        """
        Resolve many pairs with one query.

        Every requested pair is present in the result; pairs with no
        stock row get a zero snapshot.
        """
        wanted = set(pairs)
        if not wanted:
            return {}

        product_ids = {p for p, _ in wanted}
        warehouse_ids = {w for _, w in wanted}
        levels = self.db.query(StockLevel).filter(
            StockLevel.product_id.in_(product_ids),
            StockLevel.warehouse_id.in_(warehouse_ids),
        ).all()

        result: Dict[StockKey, StockSnapshot] = {}
        for level in levels:
            key = (level.product_id, level.warehouse_id)
            if key in wanted:
                result[key] = snapshot_from_level(level)
        for key in wanted:
            if key not in result:
                result[key] = empty_snapshot(*key)

        logger.debug(
            "Resolved stock snapshots",
            extra={"pairs": len(wanted), "rows": len(levels)},
        )
        return result

    def resolve_products(
        self, product_ids: Iterable[int], warehouse_ids: List[int]
    ) -> Dict[StockKey, StockSnapshot]:
        """Every product at every listed warehouse"""
        return self.resolve_many(
            (product_id, warehouse_id)
            for product_id in set(product_ids)
            for warehouse_id in warehouse_ids
        )
