"""
Domain subpackage for the engagements feature.
"""

from .models import (
    CONTEXT_SUMMARY_UNAVAILABLE,
    NO_ENGAGEMENT_HISTORY,
    SUMMARY_UNAVAILABLE,
    CacheEntry,
    EngagementItem,
    EngagementKind,
    EngagementPayload,
    EntityKind,
    SummaryResult,
    engagement_cache_key,
)
from .schemas import ENGAGEMENT_SCHEMAS, EngagementSchema

__all__ = [
    "CONTEXT_SUMMARY_UNAVAILABLE",
    "ENGAGEMENT_SCHEMAS",
    "NO_ENGAGEMENT_HISTORY",
    "SUMMARY_UNAVAILABLE",
    "CacheEntry",
    "EngagementItem",
    "EngagementKind",
    "EngagementPayload",
    "EngagementSchema",
    "EntityKind",
    "SummaryResult",
    "engagement_cache_key",
]
