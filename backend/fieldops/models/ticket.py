from __future__ import annotations
from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, DateTime, JSON
from .base import Base, utcnow


class Ticket(Base):
    __tablename__ = 'tickets'
    # Status constants
    STATUS_NEW = 'new'
    STATUS_ASSIGNED = 'assigned'
    STATUS_SCHEDULED = 'scheduled'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_RESOLVED = 'resolved'
    STATUS_CLOSED = 'closed'
    ALL_STATUSES = (STATUS_NEW, STATUS_ASSIGNED, STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_RESOLVED, STATUS_CLOSED)
    OPEN_STATUSES = (STATUS_NEW, STATUS_ASSIGNED, STATUS_SCHEDULED, STATUS_IN_PROGRESS)
    # Priority constants
    PRIORITY_LOW = 'low'
    PRIORITY_MEDIUM = 'medium'
    PRIORITY_HIGH = 'high'
    PRIORITY_CRITICAL = 'critical'
    ALL_PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH, PRIORITY_CRITICAL)
    # Helpdesk urgency levels
    URGENCY_LEVELS = ('low', 'normal', 'high', 'critical')

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    diagnostic_info: Mapped[str] = mapped_column(Text, nullable=False, default='')
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIORITY_MEDIUM, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_NEW, index=True)
    device_id: Mapped[int] = mapped_column(ForeignKey('devices.id'), nullable=False, index=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey('restaurants.id'), nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    assignee_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    photos: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sla_due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_for: Mapped[Optional[str]] = mapped_column(String(255))
    resolution: Mapped[Optional[str]] = mapped_column(Text)
    time_spent_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Helpdesk creation flow
    source: Mapped[str] = mapped_column(String(16), nullable=False, default='standard')
    jira_ticket_id: Mapped[Optional[str]] = mapped_column(String(64))
    customer_report: Mapped[Optional[str]] = mapped_column(Text)
    problem_description: Mapped[Optional[str]] = mapped_column(Text)
    initial_diagnosis: Mapped[Optional[str]] = mapped_column(Text)
    remote_steps_attempted: Mapped[Optional[str]] = mapped_column(Text)
    business_impact: Mapped[Optional[str]] = mapped_column(Text)
    requires_onsite: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_duration: Mapped[Optional[str]] = mapped_column(String(16))
    urgency_level: Mapped[Optional[str]] = mapped_column(String(16))
    preferred_time_slot: Mapped[Optional[str]] = mapped_column(String(64))
    contact_person: Mapped[Optional[str]] = mapped_column(String(128))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32))
    access_instructions: Mapped[Optional[str]] = mapped_column(Text)

    device = relationship('Device')
    restaurant = relationship('Restaurant')
    assignee = relationship('User', foreign_keys=[assignee_id])
    creator = relationship('User', foreign_keys=[created_by])
    history = relationship('TicketHistory', order_by='TicketHistory.id', back_populates='ticket')
    comments = relationship('TicketComment', order_by='TicketComment.id', back_populates='ticket')

# Status flow: new -> assigned -> [scheduled ->] in-progress -> resolved -> closed
# Transitions go through services.lifecycle; nothing else writes status.


class TicketHistory(Base):
    """Append-only; one row per status change or assignment."""
    __tablename__ = 'ticket_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    ticket = relationship('Ticket', back_populates='history')


class TicketComment(Base):
    __tablename__ = 'ticket_comments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    ticket = relationship('Ticket', back_populates='comments')
    author = relationship('User')
