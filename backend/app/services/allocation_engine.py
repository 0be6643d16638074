"""
Allocation Engine

Decides, line by line, where each unit of an order comes from:

1. stock at the line's own warehouse
2. transfers from other warehouses, largest surplus above reorder
   point first (ties by warehouse code)
3. a job card, for products that are built rather than picked
4. the product's default supplier, for whatever is left

Lines are allocated in line_number order against a StockLedger, so two
lines of the same order never count the same stock twice. A line whose
master data is broken (cyclic BOM, empty kit, no supplier to buy from,
nowhere to assemble) is blocked as a whole; nothing it would have taken
is held back from later lines.

The engine only reads stock. Reservations happen at execution.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from app.core.settings import Settings, get_settings
from app.exceptions import ConfigurationError
from app.logging_config import get_logger
from app.models import Product, SalesOrderLine, Supplier, Warehouse
from app.schemas.orchestration import (
    AllocationKind,
    AllocationLeg,
    FulfillmentPolicy,
    FulfillmentType,
    JobCardComponentPlan,
    JobType,
    LineAllocation,
    ProductType,
    PurchaseOrderReason,
    PurchaseSourceType,
    StockBasisEntry,
    StockSnapshot,
)
from app.services.bom_service import BOMExpander
from app.services.inventory_helpers import ZERO, to_quantity

logger = get_logger(__name__)

StockKey = Tuple[int, int]

# Product types that are built on a job card, and the kind of job
JOB_TYPES: Dict[str, JobType] = {
    ProductType.ASSEMBLY_REQUIRED.value: JobType.ASSEMBLY,
    ProductType.MADE_TO_ORDER.value: JobType.MACHINING,
    ProductType.KIT.value: JobType.ASSEMBLY,
}

# Legs that put stock in motion within the wave being planned
MOVABLE_KINDS = frozenset({AllocationKind.FROM_STOCK, AllocationKind.TRANSFER, AllocationKind.ASSEMBLY})


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class OutstandingLine:
    """An order line and the part of it no earlier wave covers"""
    line: SalesOrderLine
    product: Product
    quantity: Decimal
    target: Warehouse
    # product_id -> quantity already on open POs raised for this line
    on_order: Dict[int, Decimal] = field(default_factory=dict)


@dataclass
class JobSpec:
    product: Product
    warehouse: Warehouse
    job_type: JobType
    quantity: Decimal
    components: List[JobCardComponentPlan] = field(default_factory=list)


@dataclass
class PurchaseNeed:
    supplier: Supplier
    reason: PurchaseOrderReason
    source_type: PurchaseSourceType
    product_id: int
    sku: str
    product_name: str
    quantity: Decimal
    warehouse: Warehouse
    unit_cost: Optional[Decimal] = None


@dataclass
class LineResult:
    item: OutstandingLine
    allocation: LineAllocation
    job: Optional[JobSpec] = None
    purchases: List[PurchaseNeed] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def needs_job_card(product: Product, expander: BOMExpander) -> bool:
    """Kits always; assembled and machined products when they have a BOM"""
    if product.product_type == ProductType.KIT.value:
        return True
    if product.product_type in JOB_TYPES:
        return expander.has_bom(product.id)
    return False


# ============================================================================
# Stock ledger
# ============================================================================

class StockLedger:
    """
    Availability as it stands after the lines allocated so far.

    Built from one batch of snapshots; nothing here touches the database.
    """

    def __init__(self, snapshots: Dict[StockKey, StockSnapshot]):
        self._snapshots = snapshots
        self._taken: Dict[StockKey, Decimal] = defaultdict(lambda: ZERO)

    def snapshot(self, product_id: int, warehouse_id: int) -> Optional[StockSnapshot]:
        return self._snapshots.get((product_id, warehouse_id))

    def available(self, product_id: int, warehouse_id: int) -> Decimal:
        snap = self.snapshot(product_id, warehouse_id)
        base = snap.available if snap is not None else ZERO
        return to_quantity(base - self._taken[(product_id, warehouse_id)])

    def reorder_point(self, product_id: int, warehouse_id: int) -> Decimal:
        snap = self.snapshot(product_id, warehouse_id)
        return snap.reorder_point if snap is not None else ZERO

    def apply(self, takes: Dict[StockKey, Decimal]) -> None:
        for key, quantity in takes.items():
            self._taken[key] += quantity

    def basis(self) -> List[StockBasisEntry]:
        return [
            StockBasisEntry(product_id=p, warehouse_id=w, available=snap.available)
            for (p, w), snap in sorted(self._snapshots.items())
        ]


class _PendingTakes:
    """Takes for one line; only applied to the ledger if the line plans cleanly."""

    def __init__(self, ledger: StockLedger):
        self.ledger = ledger
        self.takes: Dict[StockKey, Decimal] = defaultdict(lambda: ZERO)

    def available(self, product_id: int, warehouse_id: int) -> Decimal:
        return self.ledger.available(product_id, warehouse_id) - self.takes[(product_id, warehouse_id)]

    def take(self, product_id: int, warehouse_id: int, quantity: Decimal) -> None:
        self.takes[(product_id, warehouse_id)] += quantity

    def commit(self) -> None:
        self.ledger.apply(self.takes)


# ============================================================================
# Engine
# ============================================================================

class AllocationEngine:

    def __init__(
        self,
        warehouses: Sequence[Warehouse],
        ledger: StockLedger,
        expander: BOMExpander,
        suppliers: Dict[int, Supplier],
        settings: Optional[Settings] = None,
    ):
        self.warehouses = sorted(warehouses, key=lambda w: w.code)
        self.assembly_warehouses = [w for w in self.warehouses if w.can_assemble]
        self.ledger = ledger
        self.expander = expander
        self.suppliers = suppliers
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def allocate(self, item: OutstandingLine) -> LineResult:
        pending = _PendingTakes(self.ledger)
        warnings: List[str] = []
        purchases: List[PurchaseNeed] = []
        job: Optional[JobSpec] = None
        line_no = item.line.line_number

        try:
            if needs_job_card(item.product, self.expander):
                legs, job = self._allocate_job(item, pending, purchases, warnings)
            else:
                if item.product.product_type in JOB_TYPES:
                    warnings.append(
                        f"Line {line_no}: {item.product.sku} has no BOM, fulfilling from stock"
                    )
                legs = self._allocate_stock(item, pending, purchases, warnings)
        except ConfigurationError as exc:
            return self._blocked(item, exc)

        pending.commit()

        if job is not None:
            fulfillment_type = FulfillmentType.ASSEMBLY_REQUIRED
            fulfillable = all(c.shortfall <= ZERO or c.is_optional for c in job.components)
        elif any(leg.kind == AllocationKind.BACKORDER for leg in legs):
            fulfillment_type = FulfillmentType.BACKORDER
            fulfillable = False
        elif any(leg.kind == AllocationKind.TRANSFER for leg in legs):
            fulfillment_type = FulfillmentType.FROM_STOCK_PARTIAL_TRANSFER
            fulfillable = True
        else:
            fulfillment_type = FulfillmentType.FROM_STOCK
            fulfillable = True

        allocation = self._line_allocation(item, fulfillment_type, legs, fulfillable)
        return LineResult(item=item, allocation=allocation, job=job, purchases=purchases, warnings=warnings)

    def allocate_all(self, items: Iterable[OutstandingLine]) -> List[LineResult]:
        return [self.allocate(item) for item in sorted(items, key=lambda i: i.line.line_number)]

    # ------------------------------------------------------------------
    # Stock path
    # ------------------------------------------------------------------

    def _allocate_stock(
        self,
        item: OutstandingLine,
        pending: _PendingTakes,
        purchases: List[PurchaseNeed],
        warnings: List[str],
    ) -> List[AllocationLeg]:
        product = item.product
        target = item.target
        remaining = item.quantity
        legs: List[AllocationLeg] = []

        local = min(max(pending.available(product.id, target.id), ZERO), remaining)
        if local > ZERO:
            pending.take(product.id, target.id, local)
            legs.append(AllocationLeg(
                kind=AllocationKind.FROM_STOCK,
                quantity=to_quantity(local),
                warehouse_id=target.id,
                warehouse_code=target.code,
            ))
            remaining -= local

        if remaining > ZERO:
            remaining = self._plan_transfers(item, remaining, pending, legs, warnings)

        if remaining > ZERO:
            legs.append(self._backorder(item, remaining, purchases, warnings))

        return legs

    def _plan_transfers(
        self,
        item: OutstandingLine,
        remaining: Decimal,
        pending: _PendingTakes,
        legs: List[AllocationLeg],
        warnings: List[str],
    ) -> Decimal:
        product = item.product
        target = item.target
        sources = [w for w in self.warehouses if w.id != target.id]
        respect = self.settings.TRANSFER_RESPECT_REORDER_POINT

        def surplus(warehouse: Warehouse, keep_reorder_point: bool) -> Decimal:
            available = pending.available(product.id, warehouse.id)
            if keep_reorder_point:
                available -= self.ledger.reorder_point(product.id, warehouse.id)
            return max(available, ZERO)

        passes = [respect]
        if respect and self.settings.ALLOW_TRANSFER_BELOW_REORDER_POINT:
            passes.append(False)

        for keep_reorder_point in passes:
            below = respect and not keep_reorder_point
            ranked = sorted(
                ((surplus(w, keep_reorder_point), w) for w in sources),
                key=lambda pair: (-pair[0], pair[1].code),
            )
            for quantity_free, source in ranked:
                if remaining <= ZERO:
                    break
                if quantity_free <= ZERO:
                    continue
                quantity = min(quantity_free, remaining)
                pending.take(product.id, source.id, quantity)
                remaining -= quantity

                existing = next(
                    (leg for leg in legs if leg.kind == AllocationKind.TRANSFER and leg.warehouse_id == source.id),
                    None,
                )
                if existing is not None:
                    existing.quantity = to_quantity(existing.quantity + quantity)
                    existing.below_reorder_point = existing.below_reorder_point or below
                else:
                    legs.append(AllocationLeg(
                        kind=AllocationKind.TRANSFER,
                        quantity=to_quantity(quantity),
                        warehouse_id=source.id,
                        warehouse_code=source.code,
                        to_warehouse_id=target.id,
                        to_warehouse_code=target.code,
                        below_reorder_point=below,
                    ))
                if below:
                    warnings.append(
                        f"Line {item.line.line_number}: transferring {to_quantity(quantity)} x {product.sku} "
                        f"from {source.code} takes it below its reorder point"
                    )
        return remaining

    def _backorder(
        self,
        item: OutstandingLine,
        quantity: Decimal,
        purchases: List[PurchaseNeed],
        warnings: List[str],
    ) -> AllocationLeg:
        product = item.product
        supplier = self._supplier(product.default_supplier_id, product.sku, product.id)
        already = min(item.on_order.get(product.id, ZERO), quantity)
        to_buy = quantity - already

        if to_buy > ZERO:
            purchases.append(PurchaseNeed(
                supplier=supplier,
                reason=PurchaseOrderReason.FINISHED_GOODS_BACKORDER,
                source_type=PurchaseSourceType.ORDER_LINE,
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                quantity=to_quantity(to_buy),
                warehouse=item.target,
                unit_cost=product.cost_price,
            ))
        warnings.append(
            f"Line {item.line.line_number}: {to_quantity(quantity)} x {product.sku} backordered from {supplier.code}"
        )
        return AllocationLeg(
            kind=AllocationKind.BACKORDER,
            quantity=to_quantity(quantity),
            warehouse_id=item.target.id,
            warehouse_code=item.target.code,
            supplier_id=supplier.id,
            already_on_order=to_quantity(already),
        )

    # ------------------------------------------------------------------
    # Job card path
    # ------------------------------------------------------------------

    def _job_warehouse(self, item: OutstandingLine) -> Warehouse:
        if item.target.can_assemble:
            return item.target
        if not self.assembly_warehouses:
            raise ConfigurationError(
                f"No warehouse can assemble {item.product.sku}",
                product_id=item.product.id,
            )
        return self.assembly_warehouses[0]

    def _allocate_job(
        self,
        item: OutstandingLine,
        pending: _PendingTakes,
        purchases: List[PurchaseNeed],
        warnings: List[str],
    ) -> Tuple[List[AllocationLeg], JobSpec]:
        product = item.product
        line_no = item.line.line_number
        warehouse = self._job_warehouse(item)
        requirements = self.expander.expand(product.id, item.quantity, source_warehouse_hint=warehouse.id)

        components: List[JobCardComponentPlan] = []
        for req in requirements:
            usable = min(max(pending.available(req.product_id, warehouse.id), ZERO), req.required_quantity)
            if usable > ZERO:
                pending.take(req.product_id, warehouse.id, usable)
            shortfall = to_quantity(req.required_quantity - usable)

            supplier: Optional[Supplier] = None
            if shortfall > ZERO and not req.is_optional:
                supplier = self._supplier(req.default_supplier_id, req.product_sku, req.product_id)
                already = min(item.on_order.get(req.product_id, ZERO), shortfall)
                if shortfall - already > ZERO:
                    purchases.append(PurchaseNeed(
                        supplier=supplier,
                        reason=PurchaseOrderReason.COMPONENT_SHORTAGE,
                        source_type=PurchaseSourceType.JOB_CARD_COMPONENT,
                        product_id=req.product_id,
                        sku=req.product_sku,
                        product_name=req.product_name,
                        quantity=to_quantity(shortfall - already),
                        warehouse=warehouse,
                        unit_cost=req.unit_cost,
                    ))
                warnings.append(
                    f"Line {line_no}: job card for {product.sku} is short {shortfall} x {req.product_sku}"
                )
            elif shortfall > ZERO:
                warnings.append(
                    f"Line {line_no}: optional component {req.product_sku} is short {shortfall}, "
                    f"job card for {product.sku} can go ahead without it"
                )

            components.append(JobCardComponentPlan(
                product_id=req.product_id,
                sku=req.product_sku,
                product_name=req.product_name,
                quantity_required=to_quantity(req.required_quantity),
                quantity_available=to_quantity(usable),
                shortfall=shortfall,
                is_optional=req.is_optional,
                supplier_id=supplier.id if supplier else None,
                supplier_name=supplier.name if supplier else None,
            ))

        legs = [AllocationLeg(
            kind=AllocationKind.ASSEMBLY,
            quantity=to_quantity(item.quantity),
            warehouse_id=warehouse.id,
            warehouse_code=warehouse.code,
            to_warehouse_id=item.target.id if warehouse.id != item.target.id else None,
            to_warehouse_code=item.target.code if warehouse.id != item.target.id else None,
        )]
        job = JobSpec(
            product=product,
            warehouse=warehouse,
            job_type=JOB_TYPES[product.product_type],
            quantity=to_quantity(item.quantity),
            components=components,
        )
        return legs, job

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _supplier(self, supplier_id: Optional[int], sku: str, product_id: int) -> Supplier:
        supplier = self.suppliers.get(supplier_id) if supplier_id is not None else None
        if supplier is None:
            raise ConfigurationError(
                f"{sku} has no default supplier to purchase from",
                product_id=product_id,
            )
        return supplier

    def _blocked(self, item: OutstandingLine, exc: ConfigurationError) -> LineResult:
        line_no = item.line.line_number
        logger.warning(
            "Line blocked by configuration",
            extra={
                "order_line_id": item.line.id,
                "line_number": line_no,
                "product_id": item.product.id,
                "reason": exc.message,
            },
        )
        legs = [AllocationLeg(
            kind=AllocationKind.BLOCKED,
            quantity=to_quantity(item.quantity),
            warehouse_id=item.target.id,
            warehouse_code=item.target.code,
        )]
        allocation = self._line_allocation(item, FulfillmentType.BLOCKED, legs, False, blocked_reason=exc.message)
        return LineResult(
            item=item,
            allocation=allocation,
            warnings=[f"Line {line_no} ({item.product.sku}) blocked: {exc.message}"],
        )

    def _line_allocation(
        self,
        item: OutstandingLine,
        fulfillment_type: FulfillmentType,
        legs: List[AllocationLeg],
        fulfillable: bool,
        blocked_reason: Optional[str] = None,
    ) -> LineAllocation:
        return LineAllocation(
            order_line_id=item.line.id,
            line_number=item.line.line_number,
            product_id=item.product.id,
            sku=item.product.sku,
            product_name=item.product.name,
            product_type=ProductType(item.product.product_type),
            quantity_ordered=to_quantity(item.line.quantity_ordered),
            quantity_outstanding=to_quantity(item.quantity),
            target_warehouse_id=item.target.id,
            target_warehouse_code=item.target.code,
            fulfillment_type=fulfillment_type,
            legs=legs,
            immediately_fulfillable=fulfillable,
            can_move_now=any(leg.kind in MOVABLE_KINDS and leg.quantity > ZERO for leg in legs),
            blocked_reason=blocked_reason,
        )


# ============================================================================
# Policy gate
# ============================================================================

def _line_list(allocations: Iterable[LineAllocation]) -> str:
    return ", ".join(str(a.line_number) for a in allocations)


def evaluate_policy(
    policy: FulfillmentPolicy,
    allocations: Sequence[LineAllocation],
    block_on_component_shortage: bool = True,
) -> Tuple[bool, Optional[str]]:
    """
    Order-level gate. Returns (can_proceed, blocked_reason).

    Ship partial goes ahead as soon as one line has something to pick,
    transfer or build in this wave; the rest is backordered.

    Every policy is matched explicitly; an unknown one is a programming
    error, not a silent pass.
    """
    if not allocations:
        return False, "Nothing outstanding to fulfil"

    if policy == FulfillmentPolicy.SHIP_COMPLETE:
        holding = [
            a for a in allocations
            if not a.immediately_fulfillable
            and not (
                a.fulfillment_type == FulfillmentType.ASSEMBLY_REQUIRED
                and not block_on_component_shortage
            )
        ]
        if holding:
            return False, f"Ship complete: line(s) {_line_list(holding)} cannot be fulfilled immediately"
        return True, None
    elif policy == FulfillmentPolicy.SHIP_PARTIAL:
        if any(a.can_move_now for a in allocations):
            return True, None
        return False, "Ship partial: nothing on the order can move now"
    elif policy == FulfillmentPolicy.SALES_DECISION:
        return False, "Sales decision required: re-plan with an explicit fulfillment policy to proceed"
    raise ValueError(f"Unhandled fulfillment policy: {policy}")
