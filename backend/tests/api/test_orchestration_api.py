"""
API Tests for the fulfillment plan endpoints

POST /api/v1/orders/{id}/fulfillment-plan
POST /api/v1/orders/{id}/fulfillment-plan/execute
"""
from decimal import Decimal

import pytest

from app.services import inventory_service
from tests.factories import (
    create_test_company,
    create_test_product,
    create_test_sales_order,
    create_test_stock,
    create_test_supplier,
    create_test_warehouse,
)


def plan_url(order_id):
    return f"/api/v1/orders/{order_id}/fulfillment-plan"


def execute_url(order_id):
    return f"/api/v1/orders/{order_id}/fulfillment-plan/execute"


class TestFulfillmentPlanAPI:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session
        self.jhb = create_test_warehouse(db_session, code="JHB")
        self.ct = create_test_warehouse(db_session, code="CT")
        supplier = create_test_supplier(db_session, code="ACME")
        self.chair = create_test_product(db_session, sku="CHAIR", supplier=supplier)
        self.lamp = create_test_product(db_session, sku="LAMP", supplier=supplier)
        create_test_stock(db_session, self.chair, self.jhb, on_hand=4)
        create_test_stock(db_session, self.chair, self.ct, on_hand=20, reorder_point=5)
        company = create_test_company(db_session, fulfillment_policy="ship_complete")
        self.order = create_test_sales_order(db_session, self.jhb, company=company, lines=[
            {"product": self.chair, "quantity": 10},
            {"product": self.lamp, "quantity": 2},
        ])
        db_session.commit()

    def test_generate_plan(self, client):
        response = client.post(plan_url(self.order.id))

        assert response.status_code == 200
        data = response.json()
        assert data["order_id"] == self.order.id
        assert data["effective_policy"] == "ship_complete"
        assert data["can_proceed"] is False
        assert data["blocked_reason"] == "Ship complete: line(s) 2 cannot be fulfilled immediately"
        assert [s["warehouse_code"] for s in data["picking_slips"]] == ["CT", "JHB"]
        assert data["summary"]["total_order_lines"] == 2
        assert len(data["fingerprint"]) == 64

    def test_generate_with_policy_override(self, client):
        response = client.post(plan_url(self.order.id), json={"policy_override": "ship_partial"})

        assert response.status_code == 200
        assert response.json()["effective_policy"] == "ship_partial"
        assert response.json()["can_proceed"] is True

    def test_generate_rejects_unknown_policy(self, client):
        response = client.post(plan_url(self.order.id), json={"policy_override": "ship_whenever"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "policy_override"

    def test_generate_unknown_order(self, client):
        response = client.post(plan_url(99999))

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "NOT_FOUND"
        assert body["details"]["resource"] == "SalesOrder"
        assert "timestamp" in body

    def test_plan_round_trips_through_execute(self, client, actor_headers):
        # Arrange
        plan = client.post(plan_url(self.order.id), json={"policy_override": "ship_partial"}).json()

        # Act
        response = client.post(execute_url(self.order.id), json={"plan": plan}, headers=actor_headers)

        # Assert
        assert response.status_code == 200
        result = response.json()
        assert result["success"] is True
        assert result["wave_number"] == 1
        assert result["order_status"] == "processing"
        assert len(result["created_documents"]["picking_slips"]) == 2
        assert len(result["created_documents"]["purchase_orders"]) == 1
        assert self.order.waves[0].executed_by == "planner@test.com"

    def test_execute_blocked_plan(self, client):
        plan = client.post(plan_url(self.order.id)).json()

        response = client.post(execute_url(self.order.id), json={"plan": plan})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "POLICY_BLOCKED"
        assert body["details"]["policy"] == "ship_complete"

    def test_execute_stale_plan(self, client):
        plan = client.post(plan_url(self.order.id), json={"policy_override": "ship_partial"}).json()
        inventory_service.adjust_stock(self.db, self.chair.id, self.jhb.id, Decimal("-1"), reason="damaged")
        self.db.commit()

        response = client.post(execute_url(self.order.id), json={"plan": plan})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "STALE_PLAN"
        assert body["details"]["changed"][0]["current"] == "3.0000"

    def test_execute_requires_plan(self, client):
        response = client.post(execute_url(self.order.id), json={})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_plan_for_wrong_order(self, client):
        other = create_test_sales_order(self.db, self.jhb, lines=[{"product": self.chair, "quantity": 1}])
        self.db.commit()
        plan = client.post(plan_url(self.order.id), json={"policy_override": "ship_partial"}).json()

        response = client.post(execute_url(other.id), json={"plan": plan})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_draft_order_cannot_be_planned(self, client):
        draft = create_test_sales_order(self.db, self.jhb, status="draft", lines=[{"product": self.chair, "quantity": 1}])
        self.db.commit()

        response = client.post(plan_url(draft.id))

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_STATE"


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["message"] == "FulfillOps API"
