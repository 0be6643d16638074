"""
Plan Builder

Turns per-line allocation results into an OrchestrationPlan:

- picking slips, one per warehouse
- job cards, one per (product, warehouse)
- transfers, one per (from, to) warehouse pair
- purchase orders, one per (supplier, reason)

Groups come out in a fixed order (warehouse code, sku, supplier code)
and lines inside a group in order line order, so the same stock and
order always give the same plan.
"""
import hashlib
import json
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from app.core.settings import Settings, get_settings
from app.models import SalesOrder, Warehouse
from app.schemas.orchestration import (
    AllocationKind,
    ComponentAvailability,
    FulfillmentPolicy,
    FulfillmentType,
    JobCardComponentPlan,
    JobCardOrderLinePlan,
    JobCardPlan,
    OrchestrationPlan,
    OrchestrationSummary,
    PickingSlipLinePlan,
    PickingSlipPlan,
    PurchaseOrderLinePlan,
    PurchaseOrderPlan,
    StockBasisEntry,
    TransferLinePlan,
    TransferPlan,
)
from app.services.allocation_engine import LineResult, evaluate_policy
from app.services.inventory_helpers import ZERO, to_quantity

PERCENT_PLACES = Decimal("0.01")


def dedupe(messages: Sequence[str]) -> List[str]:
    """Drop repeated messages, keep first-seen order."""
    seen = set()
    result = []
    for message in messages:
        if message not in seen:
            seen.add(message)
            result.append(message)
    return result


def compute_fingerprint(
    order_id: int,
    policy: FulfillmentPolicy,
    results: Sequence[LineResult],
    basis: Sequence[StockBasisEntry],
) -> str:
    """sha256 over what the plan was computed from"""
    payload = {
        "order_id": order_id,
        "policy": policy.value,
        "lines": [
            [r.allocation.order_line_id, str(r.allocation.quantity_outstanding)]
            for r in results
        ],
        "basis": [[b.product_id, b.warehouse_id, str(b.available)] for b in basis],
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def fulfillable_percent(fulfillable: int, total: int) -> Decimal:
    if total == 0:
        return Decimal("0.00")
    return (Decimal(fulfillable) * Decimal(100) / Decimal(total)).quantize(PERCENT_PLACES)


class PlanBuilder:

    def __init__(
        self,
        order: SalesOrder,
        customer_warehouse: Warehouse,
        policy: FulfillmentPolicy,
        settings: Optional[Settings] = None,
    ):
        self.order = order
        self.customer_warehouse = customer_warehouse
        self.policy = policy
        self.settings = settings or get_settings()

    def build(
        self,
        results: Sequence[LineResult],
        basis: Sequence[StockBasisEntry],
        extra_warnings: Sequence[str] = (),
        generated_at: Optional[datetime] = None,
    ) -> OrchestrationPlan:
        results = sorted(results, key=lambda r: r.allocation.line_number)
        allocations = [r.allocation for r in results]

        picking_slips = self._picking_slips(results)
        job_cards = self._job_cards(results)
        transfers = self._transfers(results, picking_slips)
        purchase_orders = self._purchase_orders(results)

        can_proceed, blocked_reason = evaluate_policy(
            self.policy,
            allocations,
            block_on_component_shortage=self.settings.BLOCK_SHIP_COMPLETE_ON_COMPONENT_SHORTAGE,
        )

        warnings = list(extra_warnings)
        for result in results:
            warnings.extend(result.warnings)

        summary = self._summary(allocations)
        summary.picking_slips_to_create = len(picking_slips)
        summary.job_cards_to_create = len(job_cards)
        summary.transfers_to_create = len(transfers)
        summary.purchase_orders_to_create = len(purchase_orders)

        return OrchestrationPlan(
            order_id=self.order.id,
            order_number=self.order.order_number,
            customer_warehouse_id=self.customer_warehouse.id,
            customer_warehouse_code=self.customer_warehouse.code,
            effective_policy=self.policy,
            can_proceed=can_proceed,
            blocked_reason=blocked_reason,
            line_allocations=allocations,
            picking_slips=picking_slips,
            job_cards=job_cards,
            transfers=transfers,
            purchase_orders=purchase_orders,
            summary=summary,
            warnings=dedupe(warnings),
            stock_basis=list(basis),
            fingerprint=compute_fingerprint(self.order.id, self.policy, results, basis),
            generated_at=generated_at or datetime.utcnow(),
        )

    # ------------------------------------------------------------------

    def _picking_slips(self, results: Sequence[LineResult]) -> List[PickingSlipPlan]:
        slips: Dict[int, PickingSlipPlan] = {}
        for result in results:
            alloc = result.allocation
            for leg in alloc.legs:
                if leg.kind not in (AllocationKind.FROM_STOCK, AllocationKind.TRANSFER):
                    continue
                slip = slips.get(leg.warehouse_id)
                if slip is None:
                    slip = slips[leg.warehouse_id] = PickingSlipPlan(
                        warehouse_id=leg.warehouse_id,
                        warehouse_code=leg.warehouse_code,
                    )
                is_transfer = leg.kind == AllocationKind.TRANSFER
                slip.lines.append(PickingSlipLinePlan(
                    order_line_id=alloc.order_line_id,
                    line_number=alloc.line_number,
                    product_id=alloc.product_id,
                    sku=alloc.sku,
                    product_name=alloc.product_name,
                    quantity=leg.quantity,
                    transfer_to_warehouse_id=leg.to_warehouse_id if is_transfer else None,
                    transfer_to_warehouse_code=leg.to_warehouse_code if is_transfer else None,
                ))
                slip.is_transfer_source = slip.is_transfer_source or is_transfer
        return sorted(slips.values(), key=lambda s: s.warehouse_code)

    def _job_cards(self, results: Sequence[LineResult]) -> List[JobCardPlan]:
        cards: Dict[Tuple[int, int], JobCardPlan] = {}
        for result in results:
            job = result.job
            if job is None:
                continue
            key = (job.product.id, job.warehouse.id)
            card = cards.get(key)
            if card is None:
                card = cards[key] = JobCardPlan(
                    product_id=job.product.id,
                    sku=job.product.sku,
                    product_name=job.product.name,
                    warehouse_id=job.warehouse.id,
                    warehouse_code=job.warehouse.code,
                    job_type=job.job_type,
                    quantity=to_quantity(ZERO),
                )
            card.quantity = to_quantity(card.quantity + job.quantity)
            card.order_lines.append(JobCardOrderLinePlan(
                order_line_id=result.allocation.order_line_id,
                line_number=result.allocation.line_number,
                quantity=job.quantity,
            ))
            card.components = _merge_components(card.components, job.components)

        for card in cards.values():
            short = [c for c in card.components if c.shortfall > ZERO]
            card.component_availability = ComponentAvailability(
                all_components_available=not any(not c.is_optional for c in short),
                components_with_shortfall=short,
            )
        return sorted(cards.values(), key=lambda c: (c.warehouse_code, c.sku))

    def _transfers(
        self, results: Sequence[LineResult], picking_slips: List[PickingSlipPlan]
    ) -> List[TransferPlan]:
        slip_index = {slip.warehouse_id: i for i, slip in enumerate(picking_slips)}
        transfers: Dict[Tuple[int, int], TransferPlan] = {}

        for result in results:
            alloc = result.allocation
            for leg in alloc.legs:
                from_job = leg.kind == AllocationKind.ASSEMBLY
                if leg.to_warehouse_id is None or leg.kind not in (AllocationKind.TRANSFER, AllocationKind.ASSEMBLY):
                    continue
                key = (leg.warehouse_id, leg.to_warehouse_id)
                transfer = transfers.get(key)
                if transfer is None:
                    transfer = transfers[key] = TransferPlan(
                        from_warehouse_id=leg.warehouse_id,
                        from_warehouse_code=leg.warehouse_code,
                        to_warehouse_id=leg.to_warehouse_id,
                        to_warehouse_code=leg.to_warehouse_code,
                    )
                transfer.lines.append(TransferLinePlan(
                    order_line_id=alloc.order_line_id,
                    line_number=alloc.line_number,
                    product_id=alloc.product_id,
                    sku=alloc.sku,
                    product_name=alloc.product_name,
                    quantity=leg.quantity,
                    from_job_card=from_job,
                ))
                if not from_job:
                    transfer.linked_picking_slip_index = slip_index.get(leg.warehouse_id)

        return sorted(transfers.values(), key=lambda t: (t.from_warehouse_code, t.to_warehouse_code))

    def _purchase_orders(self, results: Sequence[LineResult]) -> List[PurchaseOrderPlan]:
        orders: Dict[Tuple[int, str], PurchaseOrderPlan] = {}
        for result in results:
            for need in result.purchases:
                key = (need.supplier.id, need.reason.value)
                po = orders.get(key)
                if po is None:
                    po = orders[key] = PurchaseOrderPlan(
                        supplier_id=need.supplier.id,
                        supplier_code=need.supplier.code,
                        supplier_name=need.supplier.name,
                        currency=need.supplier.currency or self.settings.DEFAULT_SUPPLIER_CURRENCY,
                        reason=need.reason,
                    )
                po.lines.append(PurchaseOrderLinePlan(
                    product_id=need.product_id,
                    sku=need.sku,
                    product_name=need.product_name,
                    quantity=need.quantity,
                    warehouse_id=need.warehouse.id,
                    warehouse_code=need.warehouse.code,
                    estimated_unit_cost=to_quantity(need.unit_cost) if need.unit_cost is not None else None,
                    source_type=need.source_type,
                    source_id=result.allocation.order_line_id,
                    line_number=result.allocation.line_number,
                ))
        return sorted(orders.values(), key=lambda p: (p.supplier_code, p.reason.value))

    def _summary(self, allocations) -> OrchestrationSummary:
        total = len(allocations)
        fulfillable = sum(1 for a in allocations if a.immediately_fulfillable)

        def has_leg(allocation, kind):
            return any(leg.kind == kind for leg in allocation.legs)

        return OrchestrationSummary(
            total_order_lines=total,
            lines_from_stock=sum(1 for a in allocations if a.fulfillment_type == FulfillmentType.FROM_STOCK),
            lines_requiring_assembly=sum(1 for a in allocations if has_leg(a, AllocationKind.ASSEMBLY)),
            lines_requiring_transfer=sum(1 for a in allocations if has_leg(a, AllocationKind.TRANSFER)),
            lines_backordered=sum(1 for a in allocations if has_leg(a, AllocationKind.BACKORDER)),
            lines_blocked=sum(1 for a in allocations if a.fulfillment_type == FulfillmentType.BLOCKED),
            can_fulfill_completely=total > 0 and fulfillable == total,
            immediately_fulfillable_percent=fulfillable_percent(fulfillable, total),
        )


def _merge_components(
    existing: List[JobCardComponentPlan], new: List[JobCardComponentPlan]
) -> List[JobCardComponentPlan]:
    merged = {c.product_id: c.model_copy() for c in existing}
    order = [c.product_id for c in existing]
    for component in new:
        current = merged.get(component.product_id)
        if current is None:
            merged[component.product_id] = component.model_copy()
            order.append(component.product_id)
            continue
        current.quantity_required = to_quantity(current.quantity_required + component.quantity_required)
        current.quantity_available = to_quantity(current.quantity_available + component.quantity_available)
        current.shortfall = to_quantity(current.shortfall + component.shortfall)
        current.is_optional = current.is_optional and component.is_optional
        current.supplier_id = current.supplier_id or component.supplier_id
        current.supplier_name = current.supplier_name or component.supplier_name
    return [merged[pid] for pid in order]
