"""
Integration Tests: orders competing for the same stock

Two orders are planned against the same snapshot. Whichever executes
first wins; the other is told to re-plan, and available stock never
goes below zero.
"""
from decimal import Decimal

import pytest

from app.exceptions import ReservationConflictError, StalePlanError
from app.models import FulfillmentWave, PickingSlip, StockReservation
from app.services import inventory_service
from app.services.orchestration_service import OrchestrationService
from app.services.plan_executor import PlanExecutor
from tests.factories import (
    create_test_product,
    create_test_sales_order,
    create_test_stock,
    create_test_supplier,
    create_test_warehouse,
)


D = Decimal


class TestCompetingOrders:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        """5 in stock; two orders want 4 each."""
        self.db = db_session
        self.jhb = create_test_warehouse(db_session, code="JHB")
        supplier = create_test_supplier(db_session, code="ACME")
        self.chair = create_test_product(db_session, sku="CHAIR", supplier=supplier)
        create_test_stock(db_session, self.chair, self.jhb, on_hand=5)
        self.first = create_test_sales_order(db_session, self.jhb, lines=[{"product": self.chair, "quantity": 4}])
        self.second = create_test_sales_order(db_session, self.jhb, lines=[{"product": self.chair, "quantity": 4}])
        db_session.commit()
        self.service = OrchestrationService(db_session)

    def _available(self):
        return inventory_service.get_stock_level(self.db, self.chair.id, self.jhb.id).available

    def test_second_execution_must_replan(self):
        # Both plans see 5 available
        plan_a = self.service.generate_plan(self.first.id)
        plan_b = self.service.generate_plan(self.second.id)
        assert plan_a.can_proceed and plan_b.can_proceed

        self.service.execute_plan(self.first.id, plan_a)

        with pytest.raises(StalePlanError) as exc_info:
            self.service.execute_plan(self.second.id, plan_b)
        assert exc_info.value.details["changed"][0]["current"] == "1.0000"
        assert self._available() == D("1")

        # Re-planning shows the truth: only 1 left, the rest must be bought
        replanned = self.service.generate_plan(self.second.id)
        assert replanned.can_proceed is False
        assert [leg.quantity for leg in replanned.line_allocations[0].legs] == [D("1"), D("3")]
        assert self.db.query(FulfillmentWave).count() == 1

    def test_reservation_is_rejected_not_clamped(self):
        """
        Stock disappears after the stale check has passed. The reservation
        refuses, and the whole wave is rolled back.
        """
        # Arrange
        plan = self.service.generate_plan(self.second.id)
        inventory_service.reserve_stock(
            self.db, self.chair.id, self.jhb.id, D("3"),
            reference_type="manual", reference_id=1,
        )
        self.db.commit()

        # A generator that still reports the old snapshot
        executor = PlanExecutor(self.db, lambda order_id, policy: plan)

        # Act
        with pytest.raises(ReservationConflictError) as exc_info:
            executor.execute(self.second.id, plan)

        # Assert
        assert exc_info.value.details["requested"] == "4.0000"
        assert exc_info.value.details["available"] == "2.0000"
        assert exc_info.value.details["document"].startswith("PS-")
        assert self.db.query(PickingSlip).count() == 0
        assert self.db.query(FulfillmentWave).count() == 0
        assert self.db.query(StockReservation).count() == 1
        assert self._available() == D("2")

    def test_available_never_negative(self):
        for order in (self.first, self.second):
            plan = self.service.generate_plan(order.id)
            if not plan.can_proceed:
                continue
            try:
                self.service.execute_plan(order.id, plan)
            except (StalePlanError, ReservationConflictError):
                pass
            assert self._available() >= D("0")

        assert self._available() == D("1")
