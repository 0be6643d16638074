"""
Bill of Materials model

One row per (parent, component). A component may itself have a BOM,
so the structure is a graph walked by BOMExpander.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Boolean, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class BOMComponent(Base):
    """A component line on a product's bill of materials"""
    __tablename__ = "bom_components"
    __table_args__ = (
        UniqueConstraint("parent_product_id", "component_product_id", name="uq_bom_parent_component"),
        CheckConstraint("quantity > 0", name="ck_bom_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    parent_product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    component_product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    # Quantity of component per one unit of parent
    quantity = Column(Numeric(18, 4), nullable=False)
    is_optional = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    notes = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    parent = relationship("Product", foreign_keys=[parent_product_id], back_populates="bom_components")
    component = relationship("Product", foreign_keys=[component_product_id])

    def __repr__(self):
        return f"<BOMComponent {self.parent_product_id} -> {self.component_product_id} x{self.quantity}>"
