"""
Picking slip models

One slip per warehouse per wave. Lines flagged with a transfer target
are picked for shipment to another warehouse rather than to the customer.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Boolean, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class PickingSlip(Base):
    __tablename__ = "picking_slips"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), unique=True, nullable=False, index=True)  # PS-2025-00001

    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    wave_id = Column(Integer, ForeignKey("fulfillment_waves.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)

    # pending, in_progress, complete, cancelled
    status = Column(String(20), default="pending", nullable=False, index=True)
    is_transfer_source = Column(Boolean, default=False, nullable=False)

    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    warehouse = relationship("Warehouse")
    lines = relationship(
        "PickingSlipLine",
        back_populates="picking_slip",
        cascade="all, delete-orphan",
        order_by="PickingSlipLine.id",
    )

    def __repr__(self):
        return f"<PickingSlip {self.number}: {self.status}>"


class PickingSlipLine(Base):
    __tablename__ = "picking_slip_lines"

    id = Column(Integer, primary_key=True, index=True)
    picking_slip_id = Column(Integer, ForeignKey("picking_slips.id", ondelete="CASCADE"), nullable=False, index=True)
    order_line_id = Column(Integer, ForeignKey("sales_order_lines.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity_to_pick = Column(Numeric(18, 4), nullable=False)
    quantity_picked = Column(Numeric(18, 4), default=0, nullable=False)

    # Set when the pick feeds a transfer rather than the customer
    transfer_to_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)

    picking_slip = relationship("PickingSlip", back_populates="lines")
    product = relationship("Product")

    def __repr__(self):
        return f"<PickingSlipLine {self.product_id} x{self.quantity_to_pick}>"
