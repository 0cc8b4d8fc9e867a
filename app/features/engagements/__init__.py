"""
Engagements feature package.

Recent CRM engagements (calls, emails, meetings, notes) for a HubSpot contact
or company: association lookup, per-kind normalization, ranking, caching and
LLM summarization, co-located as one vertical slice.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as engagements_router  # noqa: F401
from .cache import EngagementCache  # noqa: F401
from .domain.models import EngagementItem, EngagementKind, EngagementPayload, EntityKind  # noqa: F401
from .services.engagement_service import EngagementService, get_engagement_service  # noqa: F401
