"""
Aggregation package for engagements.

Resolves, fetches and ranks engagement records for a contact or company.
"""

from .repository import EngagementRepository
from .service import AggregationRun, EngagementAggregationService, rank_engagements

__all__ = [
    "AggregationRun",
    "EngagementAggregationService",
    "EngagementRepository",
    "rank_engagements",
]
