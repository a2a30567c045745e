"""
sov/repository.py

Read contract the pipeline consumes from storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from sov.models import EvaluationRecord, Hallucination, Intercept, QueryHistory, Tenant, TrackedQuery


class VisibilityReader(ABC):
    """
    Storage reads needed to run batches, detect gaps and snapshot scores
    for one location.
    """

    @abstractmethod
    def get_tenant(self, org_id: str, location_id: str) -> Tenant:
        """
        Return the tenant for a location.

        Raises LocationNotFoundError when the location does not exist.
        """

    @abstractmethod
    def list_tracked_queries(self, org_id: str, location_id: str) -> list[TrackedQuery]:
        """
        Return the active tracked queries, most important first.
        """

    @abstractmethod
    def list_query_history(self, org_id: str, location_id: str) -> list[QueryHistory]:
        """
        Return lifetime evaluation and citation counts per tracked query.
        """

    @abstractmethod
    def list_intercepts(self, org_id: str, location_id: str) -> list[Intercept]:
        """
        Return head-to-head comparison outcomes.
        """

    @abstractmethod
    def list_previous_run(
        self,
        org_id: str,
        location_id: str,
        *,
        before: Optional[date] = None,
    ) -> list[EvaluationRecord]:
        """
        Return the evaluations of the most recent run dated before ``before``.

        With no ``before`` date the latest run is returned.
        """

    @abstractmethod
    def list_open_hallucinations(self, org_id: str, location_id: str) -> list[Hallucination]:
        """
        Return the hallucinations whose correction is still open.
        """

    @abstractmethod
    def latest_share_of_voice(self, org_id: str, location_id: str) -> Optional[float]:
        """
        Return the share of voice of the newest visibility snapshot, or None.
        """

    @abstractmethod
    def latest_citation_total(
        self,
        org_id: str,
        location_id: str,
        *,
        before: Optional[date] = None,
    ) -> Optional[int]:
        """
        Return the citation total of the newest authority snapshot dated
        before ``before``, or None when there is none.
        """
