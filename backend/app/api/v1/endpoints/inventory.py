"""
Inventory API Endpoints

Read-only stock position for one product at one warehouse.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.deps import get_db
from app.exceptions import NotFoundError
from app.models import Product, Warehouse
from app.schemas.common import ERROR_RESPONSES
from app.schemas.orchestration import StockSnapshot
from app.services.stock_resolver import StockResolver

router = APIRouter(responses=ERROR_RESPONSES)


@router.get("/stock", response_model=StockSnapshot)
def get_stock(
    product_id: int = Query(..., ge=1),
    warehouse_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    """Stock position, availability and status. Unknown stock rows read as zero."""
    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise NotFoundError("Product", product_id)
    if not db.query(Warehouse.id).filter(Warehouse.id == warehouse_id).first():
        raise NotFoundError("Warehouse", warehouse_id)
    return StockResolver(db).resolve(product_id, warehouse_id)
