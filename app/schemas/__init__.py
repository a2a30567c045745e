"""
app/schemas package marker.
"""

from app.schemas.scores import (
    AuthorityScoreRequest,
    AuthorityScoreResponse,
    NAPScoreRequest,
    NAPScoreResponse,
    RevenueLeakRequest,
    RevenueLeakResponse,
)
from app.schemas.visibility import (
    AuthoritySnapshotRequest,
    AuthoritySnapshotResponse,
    GapResponse,
    NAPSnapshotRequest,
    NAPSnapshotResponse,
    RevenueLeakSnapshotRequest,
    RevenueLeakSnapshotResponse,
    SovBatchRequest,
    SovBatchResponse,
    TruthAuditRequest,
    TruthAuditResponse,
)

__all__ = [
    "AuthorityScoreRequest",
    "AuthorityScoreResponse",
    "AuthoritySnapshotRequest",
    "AuthoritySnapshotResponse",
    "GapResponse",
    "NAPScoreRequest",
    "NAPScoreResponse",
    "NAPSnapshotRequest",
    "NAPSnapshotResponse",
    "RevenueLeakRequest",
    "RevenueLeakResponse",
    "RevenueLeakSnapshotRequest",
    "RevenueLeakSnapshotResponse",
    "SovBatchRequest",
    "SovBatchResponse",
    "TruthAuditRequest",
    "TruthAuditResponse",
]
