"""
Orchestration Service

Entry point for the two fulfillment operations on a sales order:

- generate_plan: read-only. Works out what is still outstanding, takes
  one stock snapshot, allocates line by line and builds the plan.
- execute_plan: hands a reviewed plan to the PlanExecutor, which
  regenerates it, checks it is still current and commits it as a wave.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.settings import Settings, get_settings
from app.core.status_config import (
    OPEN_PURCHASE_ORDER_STATUSES,
    PLANNABLE_ORDER_STATUSES,
    JobCardStatus,
    PickingSlipStatus,
)
from app.exceptions import ConfigurationError, InvalidStateError, NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models import (
    JobCard,
    JobCardLine,
    PickingSlip,
    PickingSlipLine,
    PurchaseOrder,
    PurchaseOrderLine,
    SalesOrder,
    Supplier,
    Warehouse,
)
from app.schemas.orchestration import ExecutionResult, FulfillmentPolicy, OrchestrationPlan
from app.services.allocation_engine import AllocationEngine, OutstandingLine, StockLedger, needs_job_card
from app.services.bom_service import BOMExpander
from app.services.inventory_helpers import ZERO, positive_part, to_quantity
from app.services.plan_builder import PlanBuilder
from app.services.plan_executor import PlanExecutor
from app.services.stock_resolver import StockResolver

logger = get_logger(__name__)


def _policy(value: str, source: str) -> FulfillmentPolicy:
    try:
        return FulfillmentPolicy(value)
    except ValueError:
        raise ValidationError(
            f"Unknown fulfillment policy '{value}' on {source}",
            field="fulfillment_policy",
            value=value,
        )


class OrchestrationService:

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> SalesOrder:
        order = self.db.query(SalesOrder).filter(SalesOrder.id == order_id).first()
        if not order:
            raise NotFoundError("SalesOrder", order_id)
        return order

    def effective_policy(
        self, order: SalesOrder, override: Optional[FulfillmentPolicy] = None
    ) -> FulfillmentPolicy:
        """Request override, then order override, then company, then default"""
        if override is not None:
            return FulfillmentPolicy(override)
        if order.fulfillment_policy_override:
            return _policy(order.fulfillment_policy_override, f"order {order.order_number}")
        if order.company and order.company.fulfillment_policy:
            return _policy(order.company.fulfillment_policy, f"company {order.company.code}")
        return _policy(self.settings.DEFAULT_FULFILLMENT_POLICY, "settings")

    def covered_quantities(self, order: SalesOrder) -> Dict[int, Decimal]:
        """Quantity per order line already taken on by earlier, non-cancelled waves"""
        covered: Dict[int, Decimal] = defaultdict(lambda: ZERO)
        line_ids = [line.id for line in order.lines]
        if not line_ids:
            return covered

        picked = (
            self.db.query(PickingSlipLine.order_line_id, func.sum(PickingSlipLine.quantity_to_pick))
            .join(PickingSlip, PickingSlip.id == PickingSlipLine.picking_slip_id)
            .filter(
                PickingSlipLine.order_line_id.in_(line_ids),
                PickingSlip.status != PickingSlipStatus.CANCELLED.value,
            )
            .group_by(PickingSlipLine.order_line_id)
            .all()
        )
        built = (
            self.db.query(JobCardLine.order_line_id, func.sum(JobCardLine.quantity))
            .join(JobCard, JobCard.id == JobCardLine.job_card_id)
            .filter(
                JobCardLine.order_line_id.in_(line_ids),
                JobCard.status != JobCardStatus.CANCELLED.value,
            )
            .group_by(JobCardLine.order_line_id)
            .all()
        )
        for line_id, quantity in list(picked) + list(built):
            covered[line_id] += to_quantity(quantity)
        return covered

    def open_purchase_quantities(self, order: SalesOrder) -> Dict[Tuple[int, int], Decimal]:
        """(order line, product) -> quantity still due on open POs raised for it"""
        line_ids = [line.id for line in order.lines]
        if not line_ids:
            return {}
        rows = (
            self.db.query(PurchaseOrderLine)
            .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.purchase_order_id)
            .filter(
                PurchaseOrderLine.source_id.in_(line_ids),
                PurchaseOrder.status.in_(OPEN_PURCHASE_ORDER_STATUSES),
            )
            .all()
        )
        result: Dict[Tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
        for row in rows:
            result[(row.source_id, row.product_id)] += positive_part(
                to_quantity(row.quantity) - to_quantity(row.quantity_received)
            )
        return result

    def outstanding_lines(
        self, order: SalesOrder, warehouses: Dict[int, Warehouse]
    ) -> List[OutstandingLine]:
        covered = self.covered_quantities(order)
        on_order = self.open_purchase_quantities(order)
        items = []
        for line in sorted(order.lines, key=lambda l: l.line_number):
            quantity = to_quantity(line.quantity_ordered) - covered.get(line.id, ZERO)
            if quantity <= ZERO:
                continue
            target = warehouses[line.warehouse_id or order.warehouse_id]
            items.append(OutstandingLine(
                line=line,
                product=line.product,
                quantity=to_quantity(quantity),
                target=target,
                on_order={
                    product_id: qty
                    for (line_id, product_id), qty in on_order.items()
                    if line_id == line.id and qty > ZERO
                },
            ))
        return items

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate_plan(
        self, order_id: int, policy_override: Optional[FulfillmentPolicy] = None
    ) -> OrchestrationPlan:
        """Work out how to fulfil what is outstanding on an order. Writes nothing."""
        order = self.get_order(order_id)
        if order.status not in PLANNABLE_ORDER_STATUSES:
            raise InvalidStateError(
                f"Order {order.order_number} is {order.status}; only confirmed or processing orders can be planned",
                current_state=order.status,
                allowed_states=sorted(PLANNABLE_ORDER_STATUSES),
            )
        policy = self.effective_policy(order, policy_override)

        target_ids: Set[int] = {order.warehouse_id}
        target_ids.update(line.warehouse_id for line in order.lines if line.warehouse_id)
        warehouses = (
            self.db.query(Warehouse)
            .filter(or_(Warehouse.active.is_(True), Warehouse.id.in_(target_ids)))
            .order_by(Warehouse.code)
            .all()
        )
        by_id = {w.id: w for w in warehouses}
        items = self.outstanding_lines(order, by_id)

        # Components are resolved in the same snapshot as finished goods
        expander = BOMExpander(self.db, max_depth=self.settings.BOM_MAX_DEPTH)
        product_ids: Set[int] = set()
        for item in items:
            product_ids.add(item.product.id)
            try:
                if needs_job_card(item.product, expander):
                    product_ids.update(
                        c.product_id for c in expander.expand(item.product.id, item.quantity)
                    )
            except ConfigurationError:
                # reported per line by the engine
                continue

        snapshots = StockResolver(self.db).resolve_products(product_ids, list(by_id))
        ledger = StockLedger(snapshots)
        suppliers = {
            s.id: s for s in self.db.query(Supplier).filter(Supplier.active.is_(True)).all()
        }

        engine = AllocationEngine(list(by_id.values()), ledger, expander, suppliers, self.settings)
        results = engine.allocate_all(items)

        plan = PlanBuilder(order, by_id[order.warehouse_id], policy, self.settings).build(
            results, ledger.basis()
        )

        logger.info(
            f"Generated plan for {order.order_number}",
            extra={
                "order_id": order.id,
                "policy": policy.value,
                "lines": plan.summary.total_order_lines,
                "can_proceed": plan.can_proceed,
                "blocked_reason": plan.blocked_reason,
                "fingerprint": plan.fingerprint,
            },
        )
        return plan

    def execute_plan(
        self,
        order_id: int,
        plan: OrchestrationPlan,
        executed_by: Optional[str] = None,
    ) -> ExecutionResult:
        executor = PlanExecutor(self.db, self.generate_plan, self.settings)
        return executor.execute(order_id, plan, executed_by=executed_by)
