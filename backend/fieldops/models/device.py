from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, ForeignKey, DateTime
from .base import Base, utcnow


class Device(Base):
    __tablename__ = 'devices'
    # Status constants
    STATUS_OPERATIONAL = 'operational'
    STATUS_MAINTENANCE = 'maintenance'
    STATUS_OFFLINE = 'offline'
    ALL_STATUSES = (STATUS_OPERATIONAL, STATUS_MAINTENANCE, STATUS_OFFLINE)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(String(128), unique=True, index=True)
    model: Mapped[Optional[str]] = mapped_column(String(128))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_OPERATIONAL, index=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey('restaurants.id'), nullable=False, index=True)
    last_maintenance_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    restaurant = relationship('Restaurant', back_populates='devices')
