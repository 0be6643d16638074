"""
Transfer request models

Moves stock between warehouses. The source pick lives on a picking slip
(is_transfer_source) which the request links to.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class TransferRequest(Base):
    __tablename__ = "transfer_requests"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), unique=True, nullable=False, index=True)  # TR-2025-00001

    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    wave_id = Column(Integer, ForeignKey("fulfillment_waves.id"), nullable=False, index=True)
    from_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    to_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    picking_slip_id = Column(Integer, ForeignKey("picking_slips.id"), nullable=True)

    # pending, approved, in_transit, received, cancelled
    status = Column(String(20), default="pending", nullable=False, index=True)

    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    received_at = Column(DateTime, nullable=True)

    from_warehouse = relationship("Warehouse", foreign_keys=[from_warehouse_id])
    to_warehouse = relationship("Warehouse", foreign_keys=[to_warehouse_id])
    picking_slip = relationship("PickingSlip")
    lines = relationship(
        "TransferRequestLine",
        back_populates="transfer_request",
        cascade="all, delete-orphan",
        order_by="TransferRequestLine.id",
    )

    def __repr__(self):
        return f"<TransferRequest {self.number}: {self.status}>"


class TransferRequestLine(Base):
    __tablename__ = "transfer_request_lines"

    id = Column(Integer, primary_key=True, index=True)
    transfer_request_id = Column(Integer, ForeignKey("transfer_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    order_line_id = Column(Integer, ForeignKey("sales_order_lines.id"), nullable=True, index=True)
    line_number = Column(Integer, nullable=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Numeric(18, 4), nullable=False)
    quantity_received = Column(Numeric(18, 4), default=0, nullable=False)
    # Finished goods from a job card rather than a picked line
    from_job_card = Column(Boolean, default=False, nullable=False)

    transfer_request = relationship("TransferRequest", back_populates="lines")
    product = relationship("Product")

    def __repr__(self):
        return f"<TransferRequestLine {self.product_id} x{self.quantity}>"
