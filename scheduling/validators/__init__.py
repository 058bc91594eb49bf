"""
Calendar validators.

Validators:
- has_conflict: Pure half-open overlap check against loaded records
- ensure_interval_free: Locked overlap query against appointments and time blocks
"""

from scheduling.validators.conflict_detector import ensure_interval_free, has_conflict

__all__ = [
    "ensure_interval_free",
    "has_conflict",
]
