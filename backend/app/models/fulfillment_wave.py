"""
Fulfillment wave

One row per executed plan. Every document created by that execution
points back at its wave.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class FulfillmentWave(Base):
    __tablename__ = "fulfillment_waves"
    __table_args__ = (
        UniqueConstraint("order_id", "wave_number", name="uq_fulfillment_wave_order_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    wave_number = Column(Integer, nullable=False)

    effective_policy = Column(String(20), nullable=False)
    plan_fingerprint = Column(String(64), nullable=False)

    executed_by = Column(String(100), nullable=True)
    executed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sales_order = relationship("SalesOrder", back_populates="waves")

    def __repr__(self):
        return f"<FulfillmentWave order={self.order_id} #{self.wave_number}>"
