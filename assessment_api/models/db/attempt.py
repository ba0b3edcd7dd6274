"""
Attempt and Answer database models for test attempts.
"""

from __future__ import annotations

import enum
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_api.database import Base

if TYPE_CHECKING:
    from assessment_api.models.db.user import User


class AttemptStatus(str, enum.Enum):
    """Status of a test attempt."""

    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


class Attempt(Base):
    """
    Test attempt record.
    One participant's run through one test, optionally inside a test session.
    """

    __tablename__ = "test_attempts"

    # Primary key - UUID string
    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)

    # References
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_id: Mapped[int] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_test_id: Mapped[int | None] = mapped_column(
        ForeignKey("test_sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Timing
    start_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
        nullable=False,
    )
    end_time: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    time_spent: Mapped[int | None] = mapped_column(nullable=True)  # seconds

    # Status and progress
    status: Mapped[str] = mapped_column(
        String(20), default=AttemptStatus.STARTED.value, index=True, nullable=False
    )
    questions_answered: Mapped[int] = mapped_column(default=0, nullable=False)
    total_questions: Mapped[int | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    answers: Mapped[list["Answer"]] = relationship(
        "Answer", back_populates="attempt", cascade="all, delete-orphan"
    )

    @property
    def is_completed(self) -> bool:
        """Check if attempt is completed."""
        return self.status == AttemptStatus.COMPLETED.value


class Answer(Base):
    """
    Individual answer record within an attempt.
    """

    __tablename__ = "user_answers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    attempt_id: Mapped[str] = mapped_column(
        ForeignKey("test_attempts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )

    # Answer data
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer_data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    score: Mapped[float | None] = mapped_column(sa.Numeric(5, 2, asdecimal=False), nullable=True)
    is_correct: Mapped[bool | None] = mapped_column(nullable=True)
    time_taken: Mapped[int | None] = mapped_column(nullable=True)  # seconds
    confidence_level: Mapped[int | None] = mapped_column(nullable=True)  # 1-5
    answered_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Constraints
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", "attempt_id", name="uq_answer_attempt_question"),
    )

    # Relationships
    attempt: Mapped["Attempt"] = relationship("Attempt", back_populates="answers")

    @property
    def answer_data(self) -> dict[str, Any] | None:
        """Parse structured answer data from JSON."""
        if not self.answer_data_json:
            return None
        try:
            return json.loads(self.answer_data_json)
        except (json.JSONDecodeError, TypeError):
            return None

    @answer_data.setter
    def answer_data(self, value: dict[str, Any] | None) -> None:
        """Serialize structured answer data to JSON."""
        self.answer_data_json = json.dumps(value) if value else None
