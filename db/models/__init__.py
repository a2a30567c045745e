"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.audit import AIEvaluation, AIHallucination
from db.models.score_snapshot import AuthoritySnapshot, NAPHealthSnapshot, RevenueLeakSnapshot
from db.models.visibility import (
    CompetitorIntercept,
    Location,
    QueryGap,
    SovEvaluation,
    TargetQuery,
    VisibilitySnapshot,
)

__all__ = [
    "Location",
    "TargetQuery",
    "SovEvaluation",
    "VisibilitySnapshot",
    "QueryGap",
    "CompetitorIntercept",
    "AIEvaluation",
    "AIHallucination",
    "AuthoritySnapshot",
    "NAPHealthSnapshot",
    "RevenueLeakSnapshot",
]
