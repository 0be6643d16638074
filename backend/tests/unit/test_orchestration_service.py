"""
Unit Tests for plan generation

Runs OrchestrationService.generate_plan against a real session:
1. Transfers and job cards end to end
2. Policy precedence
3. Quantities already covered by earlier waves
4. Generation is read-only and repeatable
"""
from decimal import Decimal

import pytest

from app.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models import JobCard, PickingSlip, PurchaseOrder, StockReservation
from app.schemas.orchestration import (
    AllocationKind,
    FulfillmentPolicy,
    FulfillmentType,
    PickingSlipLinePlan,
    PickingSlipPlan,
    PurchaseOrderLinePlan,
    PurchaseOrderPlan,
    PurchaseOrderReason,
    PurchaseSourceType,
)
from app.services import document_service, inventory_service
from app.services.orchestration_service import OrchestrationService
from tests.factories import (
    create_test_bom,
    create_test_company,
    create_test_product,
    create_test_sales_order,
    create_test_stock,
    create_test_supplier,
    create_test_warehouse,
    create_test_wave,
)


D = Decimal


class TestGeneratePlan:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session
        self.service = OrchestrationService(db_session)
        self.jhb = create_test_warehouse(db_session, code="JHB", can_assemble=True)
        self.ct = create_test_warehouse(db_session, code="CT")
        self.supplier = create_test_supplier(db_session, code="ACME")

    def test_transfer_plan_groups_documents(self):
        # Arrange
        product = create_test_product(self.db, sku="CHAIR-OAK", supplier=self.supplier)
        create_test_stock(self.db, product, self.jhb, on_hand=4)
        create_test_stock(self.db, product, self.ct, on_hand=20, reorder_point=5)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": product, "quantity": 10}])

        # Act
        plan = self.service.generate_plan(order.id)

        # Assert
        assert plan.can_proceed is True
        assert plan.effective_policy == FulfillmentPolicy.SHIP_COMPLETE
        assert [s.warehouse_code for s in plan.picking_slips] == ["CT", "JHB"]
        ct_slip, jhb_slip = plan.picking_slips
        assert ct_slip.is_transfer_source is True
        assert ct_slip.lines[0].quantity == D("6")
        assert ct_slip.lines[0].transfer_to_warehouse_code == "JHB"
        assert jhb_slip.lines[0].quantity == D("4")
        assert jhb_slip.lines[0].transfer_to_warehouse_id is None

        (transfer,) = plan.transfers
        assert (transfer.from_warehouse_code, transfer.to_warehouse_code) == ("CT", "JHB")
        assert transfer.linked_picking_slip_index == 0
        assert plan.purchase_orders == []

        assert plan.summary.lines_requiring_transfer == 1
        assert plan.summary.can_fulfill_completely is True
        assert plan.summary.immediately_fulfillable_percent == D("100.00")
        assert len(plan.fingerprint) == 64

    def test_kit_with_component_shortfall(self):
        """K = 2 x A + 1 x B; A has 1 on hand, B has 10."""
        # Arrange
        a = create_test_product(self.db, sku="A", supplier=self.supplier, cost_price="4")
        b = create_test_product(self.db, sku="B", supplier=self.supplier)
        kit = create_test_product(self.db, sku="K", product_type="kit")
        create_test_bom(self.db, kit, [(a, 2), (b, 1)])
        create_test_stock(self.db, a, self.jhb, on_hand=1)
        create_test_stock(self.db, b, self.jhb, on_hand=10)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": kit, "quantity": 1}])

        # Act
        plan = self.service.generate_plan(order.id)

        # Assert
        (card,) = plan.job_cards
        assert card.sku == "K"
        assert card.component_availability.all_components_available is False
        (short,) = card.component_availability.components_with_shortfall
        assert (short.sku, short.shortfall) == ("A", D("1"))

        (po,) = plan.purchase_orders
        assert po.reason == PurchaseOrderReason.COMPONENT_SHORTAGE
        assert [(l.sku, l.quantity) for l in po.lines] == [("A", D("1"))]
        assert po.lines[0].estimated_unit_cost == D("4")

        assert plan.can_proceed is False
        assert plan.blocked_reason.startswith("Ship complete")
        # Component stock is part of the basis
        assert {(e.product_id, e.warehouse_id) for e in plan.stock_basis} >= {
            (a.id, self.jhb.id),
            (b.id, self.jhb.id),
        }

    def test_ship_partial_proceeds_with_some_lines(self):
        ready = create_test_product(self.db, sku="READY", supplier=self.supplier)
        missing = create_test_product(self.db, sku="MISSING", supplier=self.supplier)
        create_test_stock(self.db, ready, self.jhb, on_hand=5)
        company = create_test_company(self.db, fulfillment_policy="ship_partial")
        order = create_test_sales_order(self.db, self.jhb, company=company, lines=[
            {"product": ready, "quantity": 5},
            {"product": missing, "quantity": 2},
        ])

        plan = self.service.generate_plan(order.id)

        assert plan.can_proceed is True
        assert plan.summary.immediately_fulfillable_percent == D("50.00")
        assert plan.summary.lines_backordered == 1

    def test_ship_partial_picks_what_a_short_line_has(self):
        """One line of 10 with 4 on hand: pick 4 now, buy 6."""
        # Arrange
        product = create_test_product(self.db, sku="CHAIR", supplier=self.supplier)
        create_test_stock(self.db, product, self.jhb, on_hand=4)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": product, "quantity": 10}])
        self.db.commit()

        # Act
        plan = self.service.generate_plan(order.id, FulfillmentPolicy.SHIP_PARTIAL)
        result = self.service.execute_plan(order.id, plan)

        # Assert
        assert plan.can_proceed is True
        assert plan.line_allocations[0].immediately_fulfillable is False
        assert plan.summary.immediately_fulfillable_percent == D("0.00")
        assert result.success is True
        assert [l.quantity for l in self.db.query(PickingSlip).one().lines] == [D("4")]
        assert [l.quantity for l in self.db.query(PurchaseOrder).one().lines] == [D("6")]
        stock = inventory_service.get_stock_level(self.db, product.id, self.jhb.id)
        assert (stock.soft_reserved, stock.available, stock.on_order) == (D("4"), D("0"), D("6"))
        assert order.status == "processing"

    def test_ship_partial_starts_a_kit_with_short_components(self):
        """K = 2 x A + 1 x B with A=1, B=10: build starts, 1 x A is bought."""
        # Arrange
        a = create_test_product(self.db, sku="A", supplier=self.supplier)
        b = create_test_product(self.db, sku="B", supplier=self.supplier)
        kit = create_test_product(self.db, sku="K", product_type="kit")
        create_test_bom(self.db, kit, [(a, 2), (b, 1)])
        create_test_stock(self.db, a, self.jhb, on_hand=1)
        create_test_stock(self.db, b, self.jhb, on_hand=10)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": kit, "quantity": 1}])
        self.db.commit()

        # Act
        plan = self.service.generate_plan(order.id, FulfillmentPolicy.SHIP_PARTIAL)
        result = self.service.execute_plan(order.id, plan)

        # Assert
        assert plan.can_proceed is True
        assert any("short 1.0000 x A" in w for w in plan.warnings)
        assert len(result.created_documents.job_cards) == 1

        card = self.db.query(JobCard).one()
        reserved = {c.product_id: (c.quantity_reserved, c.shortfall) for c in card.components}
        assert reserved == {a.id: (D("1"), D("1")), b.id: (D("1"), D("0"))}
        assert inventory_service.get_stock_level(self.db, a.id, self.jhb.id).available == D("0")
        assert inventory_service.get_stock_level(self.db, b.id, self.jhb.id).available == D("9")

        po = self.db.query(PurchaseOrder).one()
        assert po.reason == PurchaseOrderReason.COMPONENT_SHORTAGE.value
        assert [(l.product_id, l.quantity) for l in po.lines] == [(a.id, D("1"))]

    def test_sales_decision_never_proceeds(self):
        product = create_test_product(self.db, sku="P", supplier=self.supplier)
        create_test_stock(self.db, product, self.jhb, on_hand=5)
        order = create_test_sales_order(
            self.db, self.jhb, lines=[{"product": product, "quantity": 1}],
            fulfillment_policy_override="sales_decision",
        )

        plan = self.service.generate_plan(order.id)

        assert plan.can_proceed is False
        assert plan.blocked_reason.startswith("Sales decision required")

    def test_inactive_warehouse_is_not_a_source(self):
        pe = create_test_warehouse(self.db, code="PE", active=False)
        product = create_test_product(self.db, sku="P", supplier=self.supplier)
        create_test_stock(self.db, product, pe, on_hand=50)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": product, "quantity": 3}])

        plan = self.service.generate_plan(order.id)

        assert plan.transfers == []
        assert plan.line_allocations[0].fulfillment_type == FulfillmentType.BACKORDER

    def test_generation_writes_nothing(self):
        product = create_test_product(self.db, sku="P", supplier=self.supplier)
        create_test_stock(self.db, product, self.jhb, on_hand=5)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": product, "quantity": 3}])

        self.service.generate_plan(order.id)
        self.db.flush()

        assert self.db.query(PickingSlip).count() == 0
        assert self.db.query(StockReservation).count() == 0
        assert inventory_service.get_stock_level(self.db, product.id, self.jhb.id).available == D("5")
        assert order.status == "confirmed"

    def test_same_inputs_same_plan(self):
        product = create_test_product(self.db, sku="P", supplier=self.supplier)
        create_test_stock(self.db, product, self.jhb, on_hand=2)
        create_test_stock(self.db, product, self.ct, on_hand=2)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": product, "quantity": 6}])

        first = self.service.generate_plan(order.id)
        second = self.service.generate_plan(order.id)

        assert first.model_dump(exclude={"generated_at"}) == second.model_dump(exclude={"generated_at"})
        assert first.fingerprint == second.fingerprint

    def test_unknown_order(self):
        with pytest.raises(NotFoundError):
            self.service.generate_plan(99999)

    @pytest.mark.parametrize("status", ["draft", "shipped", "cancelled", "on_hold"])
    def test_order_must_be_confirmed_or_processing(self, status):
        product = create_test_product(self.db, sku="P")
        order = create_test_sales_order(self.db, self.jhb, status=status, lines=[{"product": product, "quantity": 1}])

        with pytest.raises(InvalidStateError) as exc_info:
            self.service.generate_plan(order.id)
        assert exc_info.value.details["current_state"] == status


class TestEffectivePolicy:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session
        self.service = OrchestrationService(db_session)
        self.jhb = create_test_warehouse(db_session, code="JHB")

    def test_company_policy_applies(self):
        company = create_test_company(self.db, fulfillment_policy="ship_partial")
        order = create_test_sales_order(self.db, self.jhb, company=company)

        assert self.service.effective_policy(order) == FulfillmentPolicy.SHIP_PARTIAL

    def test_order_override_beats_company(self):
        company = create_test_company(self.db, fulfillment_policy="ship_partial")
        order = create_test_sales_order(
            self.db, self.jhb, company=company, fulfillment_policy_override="sales_decision"
        )

        assert self.service.effective_policy(order) == FulfillmentPolicy.SALES_DECISION

    def test_request_override_beats_everything(self):
        company = create_test_company(self.db, fulfillment_policy="ship_partial")
        order = create_test_sales_order(
            self.db, self.jhb, company=company, fulfillment_policy_override="sales_decision"
        )

        policy = self.service.effective_policy(order, FulfillmentPolicy.SHIP_COMPLETE)

        assert policy == FulfillmentPolicy.SHIP_COMPLETE

    def test_unknown_stored_policy_is_rejected(self):
        order = create_test_sales_order(self.db, self.jhb)
        order.fulfillment_policy_override = "ship_whenever"

        with pytest.raises(ValidationError):
            self.service.effective_policy(order)


class TestOutstandingQuantities:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session
        self.service = OrchestrationService(db_session)
        self.jhb = create_test_warehouse(db_session, code="JHB")
        self.supplier = create_test_supplier(db_session, code="ACME")
        self.product = create_test_product(db_session, sku="P", supplier=self.supplier)
        create_test_stock(db_session, self.product, self.jhb, on_hand=20)
        self.order = create_test_sales_order(
            db_session, self.jhb, status="processing",
            lines=[{"product": self.product, "quantity": 10}],
        )
        self.line = self.order.lines[0]
        self.wave = create_test_wave(db_session, self.order)

    def _slip(self, quantity):
        spec = PickingSlipPlan(
            warehouse_id=self.jhb.id,
            warehouse_code="JHB",
            lines=[PickingSlipLinePlan(
                order_line_id=self.line.id,
                line_number=1,
                product_id=self.product.id,
                sku="P",
                product_name=self.product.name,
                quantity=D(quantity),
            )],
        )
        return document_service.create_picking_slip(self.db, self.order, self.wave, spec)

    def test_earlier_picks_are_not_planned_again(self):
        self._slip("4")

        plan = self.service.generate_plan(self.order.id)

        allocation = plan.line_allocations[0]
        assert allocation.quantity_ordered == D("10")
        assert allocation.quantity_outstanding == D("6")
        assert plan.picking_slips[0].lines[0].quantity == D("6")

    def test_cancelled_picks_count_as_outstanding(self):
        slip = self._slip("4")
        slip.status = "cancelled"
        self.db.flush()

        plan = self.service.generate_plan(self.order.id)

        assert plan.line_allocations[0].quantity_outstanding == D("10")

    def test_fully_covered_order_has_nothing_to_do(self):
        self._slip("10")

        plan = self.service.generate_plan(self.order.id)

        assert plan.line_allocations == []
        assert plan.can_proceed is False
        assert plan.blocked_reason == "Nothing outstanding to fulfil"

    def test_open_purchase_orders_are_not_duplicated(self):
        # Arrange
        other = create_test_product(self.db, sku="SLOW", supplier=self.supplier)
        order = create_test_sales_order(self.db, self.jhb, lines=[{"product": other, "quantity": 5}])
        line = order.lines[0]
        wave = create_test_wave(self.db, order)
        document_service.create_purchase_order(self.db, order, wave, PurchaseOrderPlan(
            supplier_id=self.supplier.id,
            supplier_code="ACME",
            supplier_name=self.supplier.name,
            currency="ZAR",
            reason=PurchaseOrderReason.FINISHED_GOODS_BACKORDER,
            lines=[PurchaseOrderLinePlan(
                product_id=other.id,
                sku="SLOW",
                product_name=other.name,
                quantity=D("3"),
                warehouse_id=self.jhb.id,
                warehouse_code="JHB",
                source_type=PurchaseSourceType.ORDER_LINE,
                source_id=line.id,
                line_number=1,
            )],
        ))

        # Act
        plan = self.service.generate_plan(order.id)

        # Assert
        leg = plan.line_allocations[0].legs[0]
        assert leg.kind == AllocationKind.BACKORDER
        assert leg.already_on_order == D("3")
        assert [l.quantity for l in plan.purchase_orders[0].lines] == [D("2")]
