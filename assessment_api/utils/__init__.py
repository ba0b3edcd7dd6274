"""Utility modules."""
from assessment_api.utils.time_utils import ensure_utc, utc_now

__all__ = [
    "ensure_utc",
    "utc_now",
]
