"""
Company model

Customer accounts. The company's fulfillment policy applies to every
order it places unless the order overrides it.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Company(Base):
    """Customer company"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # ship_complete | ship_partial | sales_decision
    fulfillment_policy = Column(String(20), default="ship_complete", nullable=False)
    default_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    default_warehouse = relationship("Warehouse", foreign_keys=[default_warehouse_id])
    sales_orders = relationship("SalesOrder", back_populates="company")

    def __repr__(self):
        return f"<Company {self.code}: {self.fulfillment_policy}>"
