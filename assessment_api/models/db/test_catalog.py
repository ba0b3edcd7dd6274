"""
Test and Question database models.
"""

from __future__ import annotations

import enum
import json
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_api.database import Base


class QuestionType(str, enum.Enum):
    """Supported question types."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    RATING_SCALE = "rating_scale"
    TEXT = "text"
    DRAWING = "drawing"
    SEQUENCE = "sequence"
    MATRIX = "matrix"


class Test(Base):
    """
    A psychometric or aptitude test instrument.
    """

    __tablename__ = "tests"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    module_type: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    category: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    time_limit: Mapped[int] = mapped_column(default=0, nullable=False)  # minutes
    total_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    question_type: Mapped[str] = mapped_column(
        String(30), default=QuestionType.MULTIPLE_CHOICE.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Relationships
    questions: Mapped[list["Question"]] = relationship(
        "Question", back_populates="test", cascade="all, delete-orphan"
    )


class Question(Base):
    """
    A single question within a test.
    Options and scoring key are stored as JSON text.
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    test_id: Mapped[int] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_type: Mapped[str] = mapped_column(String(30), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    options_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    scoring_key_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("test_id", "sequence", name="uq_question_test_sequence"),
    )

    # Relationships
    test: Mapped["Test"] = relationship("Test", back_populates="questions")

    @property
    def options(self) -> list[dict[str, Any]]:
        """Parse options from JSON."""
        if not self.options_json:
            return []
        try:
            return json.loads(self.options_json)
        except (json.JSONDecodeError, TypeError):
            return []

    @options.setter
    def options(self, value: list[dict[str, Any]] | None) -> None:
        """Serialize options to JSON."""
        self.options_json = json.dumps(value) if value else None

    @property
    def scoring_key(self) -> dict[str, Any]:
        """Parse scoring key from JSON."""
        if not self.scoring_key_json:
            return {}
        try:
            return json.loads(self.scoring_key_json)
        except (json.JSONDecodeError, TypeError):
            return {}

    @scoring_key.setter
    def scoring_key(self, value: dict[str, Any] | None) -> None:
        """Serialize scoring key to JSON."""
        self.scoring_key_json = json.dumps(value) if value else None
