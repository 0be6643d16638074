"""
Purchase Order models

Raised by fulfillment for finished goods that can't be sourced
internally and for job card components that are short.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class PurchaseOrder(Base):
    """Purchase Order header model"""
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)

    # PO Number - auto-generated (PO-2025-00001)
    number = Column(String(50), unique=True, nullable=False, index=True)

    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=True, index=True)
    wave_id = Column(Integer, ForeignKey("fulfillment_waves.id"), nullable=True, index=True)

    # finished_goods_backorder | component_shortage
    reason = Column(String(30), nullable=False)
    currency = Column(String(3), default="ZAR", nullable=False)

    # draft, pending_approval, sent, acknowledged, partially_received,
    # received, closed, cancelled
    status = Column(String(30), default="draft", nullable=False, index=True)

    total_amount = Column(Numeric(18, 4), default=0, nullable=False)

    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    supplier = relationship("Supplier", back_populates="purchase_orders")
    lines = relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_number",
    )

    def __repr__(self):
        return f"<PurchaseOrder {self.number}: {self.status}>"


class PurchaseOrderLine(Base):
    """Purchase Order line item"""
    __tablename__ = "purchase_order_lines"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    # Where the goods are delivered
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    quantity = Column(Numeric(18, 4), nullable=False)
    quantity_received = Column(Numeric(18, 4), default=0, nullable=False)
    unit_cost = Column(Numeric(18, 4), nullable=True)

    # order_line | job_card_component; source_id is the sales order line
    source_type = Column(String(30), nullable=False)
    source_id = Column(Integer, ForeignKey("sales_order_lines.id"), nullable=True, index=True)

    purchase_order = relationship("PurchaseOrder", back_populates="lines")
    product = relationship("Product")

    def __repr__(self):
        return f"<PurchaseOrderLine {self.product_id} x{self.quantity}>"
