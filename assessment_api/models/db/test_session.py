"""
Test session, module assignment and participant models.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_api.database import Base


class ParticipantStatus(str, enum.Enum):
    """Participation status of a user within a test session."""

    INVITED = "invited"
    REGISTERED = "registered"
    STARTED = "started"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class TestSession(Base):
    """
    A scheduled batch of test modules with a time window.
    Status (upcoming/active/completed) is derived from the window at read time.
    """

    __tablename__ = "test_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    session_name: Mapped[str] = mapped_column(String(255), nullable=False)
    session_code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    start_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), index=True, nullable=False
    )
    end_time: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    target_position: Mapped[str | None] = mapped_column(String(100), index=True, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Relationships
    modules: Mapped[list["SessionModule"]] = relationship(
        "SessionModule",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionModule.sequence",
    )
    participants: Mapped[list["SessionParticipant"]] = relationship(
        "SessionParticipant", back_populates="session", cascade="all, delete-orphan"
    )


class SessionModule(Base):
    """
    Assignment of one test to a test session.
    """

    __tablename__ = "session_modules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("test_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_id: Mapped[int] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    is_required: Mapped[bool] = mapped_column(default=True, nullable=False)
    weight: Mapped[float] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), default=1.0, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_session_module_sequence"),
        UniqueConstraint("session_id", "test_id", name="uq_session_module_test"),
        CheckConstraint("sequence >= 1", name="ck_session_module_sequence"),
        CheckConstraint("weight >= 0.1 AND weight <= 5.0", name="ck_session_module_weight"),
    )

    # Relationships
    session: Mapped["TestSession"] = relationship("TestSession", back_populates="modules")


class SessionParticipant(Base):
    """
    Registration of a user in a test session.
    """

    __tablename__ = "session_participants"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("test_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=ParticipantStatus.INVITED.value, index=True, nullable=False
    )
    registered_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_session_participant"),
    )

    # Relationships
    session: Mapped["TestSession"] = relationship("TestSession", back_populates="participants")
