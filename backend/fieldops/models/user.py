from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, DateTime
from .base import Base, utcnow


class User(Base):
    __tablename__ = 'users'
    # Role constants
    ROLE_TECHNICIAN = 'technician'
    ROLE_SOFTWARE_TECH = 'software_tech'
    ROLE_ADMIN = 'admin'
    ROLE_MANAGER = 'manager'
    ROLE_RESTAURANT_STAFF = 'restaurant_staff'
    ROLE_WAREHOUSE = 'warehouse'
    ALL_ROLES = (ROLE_TECHNICIAN, ROLE_SOFTWARE_TECH, ROLE_ADMIN, ROLE_MANAGER, ROLE_RESTAURANT_STAFF, ROLE_WAREHOUSE)
    FIELD_ROLES = (ROLE_TECHNICIAN, ROLE_SOFTWARE_TECH)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_TECHNICIAN, index=True)
    specialization: Mapped[Optional[str]] = mapped_column(String(128))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(512))
    # Only meaningful for restaurant_staff: scopes what they can see
    restaurant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('restaurants.id'), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, raw)


class TokenBlocklist(Base):
    """JWT ids revoked by sign-out."""
    __tablename__ = 'token_blocklist'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    jti: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    revoked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
