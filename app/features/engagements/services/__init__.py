"""
Service layer for the engagements feature.
"""

from .engagement_service import EngagementService, get_engagement_service, reset_engagement_service

__all__ = ["EngagementService", "get_engagement_service", "reset_engagement_service"]
