"""
Inventory models

StockLevel is the per (product, warehouse) balance. Only
app.services.inventory_service writes to it; every change leaves an
InventoryTransaction behind.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class StockLevel(Base):
    """Stock balance for one product at one warehouse"""
    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_level_product_warehouse"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False, index=True)

    # Quantities
    on_hand = Column(Numeric(18, 4), default=0, nullable=False)
    soft_reserved = Column(Numeric(18, 4), default=0, nullable=False)  # pending picks, can be reallocated
    hard_reserved = Column(Numeric(18, 4), default=0, nullable=False)  # picked, locked
    on_order = Column(Numeric(18, 4), default=0, nullable=False)  # incoming on open POs

    # Replenishment
    reorder_point = Column(Numeric(18, 4), default=0, nullable=False)
    reorder_quantity = Column(Numeric(18, 4), default=0, nullable=False)
    maximum_stock = Column(Numeric(18, 4), nullable=True)

    # Bumped by every conditional update
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="stock_levels")
    warehouse = relationship("Warehouse", back_populates="stock_levels")

    @hybrid_property
    def available(self):
        """Available-to-sell: on hand less both kinds of reservation"""
        return (self.on_hand or 0) - (self.soft_reserved or 0) - (self.hard_reserved or 0)

    @available.expression
    def available(cls):
        return cls.on_hand - cls.soft_reserved - cls.hard_reserved

    def __repr__(self):
        return f"<StockLevel product={self.product_id} warehouse={self.warehouse_id} available={self.available}>"


class StockReservation(Base):
    """A quantity of stock promised to a document"""
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False, index=True)

    reservation_type = Column(String(10), default="soft", nullable=False)  # soft | hard
    quantity = Column(Numeric(18, 4), nullable=False)

    # What holds the reservation: picking_slip_line, job_card_component
    reference_type = Column(String(50), nullable=False)
    reference_id = Column(Integer, nullable=False)

    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=True, index=True)
    wave_id = Column(Integer, ForeignKey("fulfillment_waves.id"), nullable=True, index=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    released_at = Column(DateTime, nullable=True)
    release_reason = Column(String(255), nullable=True)

    @property
    def is_open(self) -> bool:
        return self.released_at is None

    def __repr__(self):
        return f"<StockReservation {self.reservation_type} {self.quantity} {self.reference_type}:{self.reference_id}>"


class InventoryTransaction(Base):
    """Inventory Transaction - audit row for every stock movement"""
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True, index=True)

    # References
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False, index=True)

    transaction_type = Column(String(50), nullable=False)
    # receipt, adjustment, reservation, release, reservation_convert

    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)

    quantity = Column(Numeric(18, 4), nullable=False)
    notes = Column(Text, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product")
    warehouse = relationship("Warehouse")

    def __repr__(self):
        return f"<InventoryTransaction {self.transaction_type}: {self.quantity}>"
