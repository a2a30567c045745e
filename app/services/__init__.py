"""
app/services package marker.
"""

from app.services.visibility_service import (
    AuditRunResult,
    BatchRunResult,
    PersistenceSummary,
    VisibilityService,
    get_visibility_service,
)

__all__ = [
    "AuditRunResult",
    "BatchRunResult",
    "PersistenceSummary",
    "VisibilityService",
    "get_visibility_service",
]
