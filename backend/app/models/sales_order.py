"""
Sales Order Model

Orders arrive confirmed from the order entry side; this service only
plans and executes their fulfillment and derives the order status
from the documents it creates.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class SalesOrder(Base):
    """Sales Order header"""
    __tablename__ = "sales_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)  # SO-2025-001

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    # Delivery warehouse, used for lines that don't name their own
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)

    # draft, confirmed, processing, ready_to_ship, partially_shipped,
    # shipped, delivered, closed, on_hold, cancelled
    status = Column(String(50), default="draft", nullable=False, index=True)

    # Overrides the company's policy when set
    fulfillment_policy_override = Column(String(20), nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)

    company = relationship("Company", back_populates="sales_orders")
    warehouse = relationship("Warehouse")
    lines = relationship(
        "SalesOrderLine",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderLine.line_number",
    )
    waves = relationship("FulfillmentWave", back_populates="sales_order", order_by="FulfillmentWave.wave_number")

    def __repr__(self):
        return f"<SalesOrder {self.order_number}: {self.status}>"


class SalesOrderLine(Base):
    """Sales Order Line"""
    __tablename__ = "sales_order_lines"
    __table_args__ = (
        UniqueConstraint("sales_order_id", "line_number", name="uq_sales_order_line_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity_ordered = Column(Numeric(18, 4), nullable=False)

    # Required warehouse; falls back to the order's warehouse
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)

    # Bookkeeping owned by the downstream documents
    quantity_picked = Column(Numeric(18, 4), default=0, nullable=False)
    quantity_shipped = Column(Numeric(18, 4), default=0, nullable=False)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sales_order = relationship("SalesOrder", back_populates="lines")
    product = relationship("Product")
    warehouse = relationship("Warehouse")

    def __repr__(self):
        return f"<SalesOrderLine {self.sales_order_id}#{self.line_number} qty={self.quantity_ordered}>"
