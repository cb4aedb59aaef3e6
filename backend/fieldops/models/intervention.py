from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, Float, ForeignKey, DateTime
from .base import Base, utcnow


class Intervention(Base):
    """Completed field work attached to a ticket."""
    __tablename__ = 'interventions'
    SATISFACTION_LEVELS = ('very_satisfied', 'satisfied', 'neutral', 'dissatisfied')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    technician_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    work_performed: Mapped[str] = mapped_column(Text, nullable=False)
    root_cause: Mapped[Optional[str]] = mapped_column(Text)
    resolution: Mapped[str] = mapped_column(Text, nullable=False)
    preventive_measures: Mapped[Optional[str]] = mapped_column(Text)
    customer_satisfaction: Mapped[Optional[str]] = mapped_column(String(32))
    time_spent_hours: Mapped[Optional[float]] = mapped_column(Float)
    follow_up_required: Mapped[bool] = mapped_column(Boolean, default=False)
    follow_up_notes: Mapped[Optional[str]] = mapped_column(Text)
    technician_notes: Mapped[Optional[str]] = mapped_column(Text)
    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
