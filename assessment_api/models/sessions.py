"""Pydantic models for test session administration."""
from pydantic import BaseModel, ConfigDict, Field, model_validator

from assessment_api.config import MODULE_WEIGHT_MAX, MODULE_WEIGHT_MIN


class ModuleAssignment(BaseModel):
    """One test placed in a session."""

    model_config = ConfigDict(from_attributes=True)

    test_id: int = Field(..., ge=1)
    sequence: int = Field(..., ge=1)
    is_required: bool = True
    weight: float = Field(1.0, ge=MODULE_WEIGHT_MIN, le=MODULE_WEIGHT_MAX)


class SessionModulesUpdate(BaseModel):
    """Full replacement of a session's module list."""

    modules: list[ModuleAssignment]

    @model_validator(mode="after")
    def check_ordering(self) -> "SessionModulesUpdate":
        sequences = [m.sequence for m in self.modules]
        if len(set(sequences)) != len(sequences):
            raise ValueError("Module sequences must be unique within a session")
        if sequences and min(sequences) != 1:
            raise ValueError("Module sequences must start at 1")
        test_ids = [m.test_id for m in self.modules]
        if len(set(test_ids)) != len(test_ids):
            raise ValueError("A test can be assigned to a session only once")
        return self


class SessionModulesResponse(BaseModel):
    session_id: int
    modules: list[ModuleAssignment]


class SessionStatsResponse(BaseModel):
    total_sessions: int
    active_sessions: int
    expired_sessions: int


class MaintenanceResponse(BaseModel):
    """Outcome of one auth session maintenance sweep."""

    expired_cleaned: int
    inactive_cleaned: int
    session_stats: SessionStatsResponse
