"""
Unit Tests for derived sales order status
"""
from decimal import Decimal

import pytest

from app.services.order_status import OrderDocumentState, OrderStatusService, derive_order_status
from app.services.document_service import create_picking_slip
from app.schemas.orchestration import PickingSlipLinePlan, PickingSlipPlan
from tests.factories import (
    create_test_product,
    create_test_sales_order,
    create_test_warehouse,
    create_test_wave,
)


D = Decimal


class TestDeriveOrderStatus:

    ORDERED = {1: D("5"), 2: D("3")}

    def test_no_documents_is_confirmed(self):
        assert derive_order_status("processing", self.ORDERED, OrderDocumentState()) == "confirmed"

    def test_live_document_is_processing(self):
        state = OrderDocumentState(live_documents=1, ready_by_line={1: D("5")})

        assert derive_order_status("confirmed", self.ORDERED, state) == "processing"

    def test_every_line_ready_is_ready_to_ship(self):
        state = OrderDocumentState(live_documents=2, ready_by_line={1: D("5"), 2: D("3")})

        assert derive_order_status("processing", self.ORDERED, state) == "ready_to_ship"

    def test_reopened_document_drops_back_to_processing(self):
        state = OrderDocumentState(live_documents=2, ready_by_line={1: D("5"), 2: D("1")})

        assert derive_order_status("ready_to_ship", self.ORDERED, state) == "processing"

    @pytest.mark.parametrize("status", ["draft", "shipped", "on_hold", "cancelled"])
    def test_statuses_owned_elsewhere_are_left_alone(self, status):
        state = OrderDocumentState(live_documents=3, ready_by_line={1: D("5"), 2: D("3")})

        assert derive_order_status(status, self.ORDERED, state) == status

    def test_order_without_lines_never_ready(self):
        state = OrderDocumentState(live_documents=1)

        assert derive_order_status("confirmed", {}, state) == "processing"


class TestOrderStatusService:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session
        self.jhb = create_test_warehouse(db_session, code="JHB")
        self.product = create_test_product(db_session, sku="P")
        self.order = create_test_sales_order(db_session, self.jhb, lines=[{"product": self.product, "quantity": 2}])
        self.wave = create_test_wave(db_session, self.order)

    def _slip(self):
        line = self.order.lines[0]
        return create_picking_slip(self.db, self.order, self.wave, PickingSlipPlan(
            warehouse_id=self.jhb.id,
            warehouse_code="JHB",
            lines=[PickingSlipLinePlan(
                order_line_id=line.id, line_number=1, product_id=self.product.id,
                sku="P", product_name=self.product.name, quantity=D("2"),
            )],
        ))

    def test_recompute_moves_to_processing(self):
        self._slip()

        changed, status = OrderStatusService(self.db).recompute(self.order)

        assert (changed, status) == (True, "processing")
        assert self.order.status == "processing"

    def test_completed_direct_pick_is_ready_to_ship(self):
        self.order.status = "processing"
        slip = self._slip()
        slip.status = "complete"
        slip.lines[0].quantity_picked = D("2")

        OrderStatusService(self.db).recompute(self.order)

        assert self.order.status == "ready_to_ship"

    def test_nothing_to_change(self):
        assert OrderStatusService(self.db).recompute(self.order) == (False, "confirmed")

    def test_unreachable_status_is_left_alone(self):
        """confirmed -> ready_to_ship skips processing; the order is left as it is."""
        slip = self._slip()
        slip.status = "complete"
        slip.lines[0].quantity_picked = D("2")
        service = OrderStatusService(self.db)

        changed, status = service.recompute(self.order)

        assert service.derive(self.order) == "ready_to_ship"
        assert (changed, status) == (False, "confirmed")
        assert self.order.status == "confirmed"
