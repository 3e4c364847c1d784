"""
Complaint-related database models.

Defines SQLAlchemy ORM models for complaints and their feedback history.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, SmallInteger, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for complaint models."""

    pass


class Complaint(Base):
    """A citizen-submitted civic issue."""

    __tablename__ = "complaints"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    reporter_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Enum values stored as strings
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", index=True)

    # Set only when a superadmin forwards a reopened complaint
    department: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    voice_note_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    location_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_final: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Optimistic concurrency counter, bumped by SQLAlchemy on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    feedback_history: Mapped[List["FeedbackEntry"]] = relationship(
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="FeedbackEntry.created_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def location(self) -> dict:
        return {"lat": self.latitude, "lon": self.longitude}

    @property
    def routing_department(self) -> str:
        """Department currently responsible: the forwarded one, else the category."""
        return self.department or self.category


class FeedbackEntry(Base):
    """One resolution attempt: the admin's proof plus the citizen's review."""

    __tablename__ = "complaint_feedback"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    complaint_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("complaints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    rating: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proof_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    complaint: Mapped["Complaint"] = relationship(back_populates="feedback_history")
