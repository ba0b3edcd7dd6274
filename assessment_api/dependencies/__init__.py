"""FastAPI dependencies."""
from assessment_api.dependencies.auth import get_current_caller, get_current_user, require_admin
from assessment_api.dependencies.stores import get_report_store, get_session_manager

__all__ = [
    "get_current_caller",
    "get_current_user",
    "require_admin",
    "get_report_store",
    "get_session_manager",
]
