"""
API v1 Router - FulfillOps
"""
from fastapi import APIRouter

from app.api.v1.endpoints import fulfillment_documents, inventory, orchestration

router = APIRouter()

# Fulfillment planning and execution
router.include_router(
    orchestration.router,
    prefix="/orders",
    tags=["fulfillment"]
)

# Document lifecycles
router.include_router(
    fulfillment_documents.router,
    prefix="/fulfillment-documents",
    tags=["fulfillment-documents"]
)

# Inventory
router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["inventory"]
)
