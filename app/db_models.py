"""SQLAlchemy ORM models backing the persistent user configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class UserProfile(Base):
    """A user and the per-user settings that apply across their sources."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    mdblist_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    rpdb_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    randomized_catalogs: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    sources: Mapped[list["CatalogSourceRecord"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="CatalogSourceRecord.position",
    )


class CatalogSourceRecord(Base):
    """One catalog source attached to a user, stored as its manifest payload."""

    __tablename__ = "catalog_sources"
    __table_args__ = (
        UniqueConstraint("user_id", "source_id", name="uq_source_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE")
    )
    source_id: Mapped[str] = mapped_column(String(255))
    position: Mapped[int] = mapped_column(Integer, default=0)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped[UserProfile] = relationship(back_populates="sources")
