from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, ForeignKey, DateTime
from .base import Base, utcnow


class EquipmentItem(Base):
    __tablename__ = 'equipment_inventory'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    part_number: Mapped[Optional[str]] = mapped_column(String(64), unique=True, index=True)
    # Expected to stay >= 0; the database does not enforce it
    stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_stock_level: Mapped[Optional[int]] = mapped_column(Integer)
    warehouse_location: Mapped[Optional[str]] = mapped_column(String(128))
    supplier: Mapped[Optional[str]] = mapped_column(String(128))
    unit_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class InventoryUsage(Base):
    __tablename__ = 'inventory_usage'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(ForeignKey('equipment_inventory.id'), nullable=False, index=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    intervention_id: Mapped[Optional[int]] = mapped_column(ForeignKey('interventions.id'), nullable=True)
    quantity_used: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class EquipmentMovement(Base):
    """Stock ledger entry; quantity is always positive, movement_type gives the direction."""
    __tablename__ = 'equipment_movements'
    TYPE_IN = 'in'
    TYPE_OUT = 'out'
    TYPE_USAGE = 'usage'
    TYPES = (TYPE_IN, TYPE_OUT, TYPE_USAGE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(ForeignKey('equipment_inventory.id'), nullable=False, index=True)
    movement_type: Mapped[str] = mapped_column(String(16), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255))
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    ticket_id: Mapped[Optional[int]] = mapped_column(ForeignKey('tickets.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.movement_type == self.TYPE_IN else -self.quantity
