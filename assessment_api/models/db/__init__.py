"""Database models."""
from assessment_api.models.db.user import AuthSession, User, UserRole
from assessment_api.models.db.test_catalog import Question, QuestionType, Test
from assessment_api.models.db.test_session import (
    ParticipantStatus,
    SessionModule,
    SessionParticipant,
    TestSession,
)
from assessment_api.models.db.attempt import (
    Answer,
    Attempt,
    AttemptStatus,
)

__all__ = [
    "User",
    "UserRole",
    "AuthSession",
    "Test",
    "Question",
    "QuestionType",
    "TestSession",
    "SessionModule",
    "SessionParticipant",
    "ParticipantStatus",
    "Attempt",
    "Answer",
    "AttemptStatus",
]
