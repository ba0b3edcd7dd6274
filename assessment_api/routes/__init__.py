"""API route modules."""
from assessment_api.routes import auth, maintenance, reports, sessions

__all__ = ["auth", "maintenance", "reports", "sessions"]
