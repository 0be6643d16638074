"""Database models"""
from app.models.warehouse import Warehouse
from app.models.company import Company
from app.models.supplier import Supplier
from app.models.product import Product
from app.models.bom import BOMComponent
from app.models.inventory import StockLevel, StockReservation, InventoryTransaction
from app.models.sales_order import SalesOrder, SalesOrderLine
from app.models.fulfillment_wave import FulfillmentWave
from app.models.picking_slip import PickingSlip, PickingSlipLine
from app.models.job_card import JobCard, JobCardLine, JobCardComponent
from app.models.transfer_request import TransferRequest, TransferRequestLine
from app.models.purchase_order import PurchaseOrder, PurchaseOrderLine

__all__ = [
    # Reference data
    "Warehouse",
    "Company",
    "Supplier",
    "Product",
    "BOMComponent",
    # Inventory
    "StockLevel",
    "StockReservation",
    "InventoryTransaction",
    # Sales
    "SalesOrder",
    "SalesOrderLine",
    # Fulfillment documents
    "FulfillmentWave",
    "PickingSlip",
    "PickingSlipLine",
    "JobCard",
    "JobCardComponent",
    "JobCardLine",
    "TransferRequest",
    "TransferRequestLine",
    "PurchaseOrder",
    "PurchaseOrderLine",
]
