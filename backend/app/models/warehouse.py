"""
Warehouse model

Physical stock locations. Canonical ordering everywhere is by code.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Warehouse(Base):
    """Warehouse - a place stock is held and picked from"""
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)  # JHB, CT
    name = Column(String(100), nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    # Job cards can only be scheduled where there's an assembly bench
    can_assemble = Column(Boolean, default=False, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    stock_levels = relationship("StockLevel", back_populates="warehouse")

    def __repr__(self):
        return f"<Warehouse {self.code}>"
