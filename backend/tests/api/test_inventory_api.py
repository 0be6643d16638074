"""
API Tests for GET /api/v1/inventory/stock
"""
import pytest

from tests.factories import create_test_product, create_test_stock, create_test_warehouse


class TestStockAPI:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.jhb = create_test_warehouse(db_session, code="JHB")
        self.product = create_test_product(db_session, sku="BOLT")
        db_session.commit()
        self.db = db_session

    def test_stock_position(self, client):
        create_test_stock(self.db, self.product, self.jhb, on_hand=10, soft_reserved=2, reorder_point=3)
        self.db.commit()

        response = client.get("/api/v1/inventory/stock", params={
            "product_id": self.product.id, "warehouse_id": self.jhb.id,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["available"] == "8.0000"
        assert data["stock_status"] == "in_stock"

    def test_no_stock_row_reads_as_zero(self, client):
        response = client.get("/api/v1/inventory/stock", params={
            "product_id": self.product.id, "warehouse_id": self.jhb.id,
        })

        assert response.status_code == 200
        assert response.json()["stock_status"] == "out_of_stock"

    def test_unknown_warehouse(self, client):
        response = client.get("/api/v1/inventory/stock", params={"product_id": self.product.id, "warehouse_id": 999})

        assert response.status_code == 404
        assert response.json()["details"]["resource"] == "Warehouse"

    def test_ids_must_be_positive(self, client):
        response = client.get("/api/v1/inventory/stock", params={"product_id": 0, "warehouse_id": self.jhb.id})

        assert response.status_code == 422
