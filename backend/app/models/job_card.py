"""
Job card models

A job card builds one product at one warehouse for one or more order
lines. Components record what was required, what could be reserved
and what is still short.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Boolean, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class JobCard(Base):
    __tablename__ = "job_cards"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), unique=True, nullable=False, index=True)  # JC-2025-00001

    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    wave_id = Column(Integer, ForeignKey("fulfillment_waves.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)

    job_type = Column(String(20), default="assembly", nullable=False)  # assembly | machining
    quantity = Column(Numeric(18, 4), nullable=False)

    # pending, in_progress, on_hold, complete, cancelled
    status = Column(String(20), default="pending", nullable=False, index=True)

    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    product = relationship("Product")
    warehouse = relationship("Warehouse")
    lines = relationship(
        "JobCardLine",
        back_populates="job_card",
        cascade="all, delete-orphan",
        order_by="JobCardLine.line_number",
    )
    components = relationship(
        "JobCardComponent",
        back_populates="job_card",
        cascade="all, delete-orphan",
        order_by="JobCardComponent.id",
    )

    def __repr__(self):
        return f"<JobCard {self.number}: {self.status}>"


class JobCardComponent(Base):
    __tablename__ = "job_card_components"

    id = Column(Integer, primary_key=True, index=True)
    job_card_id = Column(Integer, ForeignKey("job_cards.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity_required = Column(Numeric(18, 4), nullable=False)
    quantity_reserved = Column(Numeric(18, 4), default=0, nullable=False)
    shortfall = Column(Numeric(18, 4), default=0, nullable=False)
    is_optional = Column(Boolean, default=False, nullable=False)

    job_card = relationship("JobCard", back_populates="components")
    product = relationship("Product")

    def __repr__(self):
        return f"<JobCardComponent {self.product_id} {self.quantity_reserved}/{self.quantity_required}>"


class JobCardLine(Base):
    """How much of a job card's output belongs to each order line"""
    __tablename__ = "job_card_lines"

    id = Column(Integer, primary_key=True, index=True)
    job_card_id = Column(Integer, ForeignKey("job_cards.id", ondelete="CASCADE"), nullable=False, index=True)
    order_line_id = Column(Integer, ForeignKey("sales_order_lines.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)
    quantity = Column(Numeric(18, 4), nullable=False)

    job_card = relationship("JobCard", back_populates="lines")

    def __repr__(self):
        return f"<JobCardLine {self.job_card_id} line={self.order_line_id} x{self.quantity}>"
