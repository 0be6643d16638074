"""
Product model
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Product(Base):
    """Product - anything that can be sold, stocked or built"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(20), default="EA", nullable=False)

    # How the product is fulfilled:
    # 'stock_only' = picked as-is
    # 'assembly_required' = built from its BOM on an assembly job card
    # 'made_to_order' = machined from its BOM on a machining job card
    # 'kit' = a bundle of components, must have a BOM
    product_type = Column(String(20), default="stock_only", nullable=False, index=True)

    default_supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    cost_price = Column(Numeric(18, 4), nullable=True)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    default_supplier = relationship("Supplier", back_populates="products")
    bom_components = relationship(
        "BOMComponent",
        back_populates="parent",
        foreign_keys="BOMComponent.parent_product_id",
        order_by="BOMComponent.sort_order",
        cascade="all, delete-orphan",
    )
    stock_levels = relationship("StockLevel", back_populates="product")

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"
