"""
Repository helpers for engagement aggregation.

Resolves which engagement records are associated with a contact, fetches
each record's properties and hands them to the normalizer. Every method here
is fail-soft: a broken kind or record degrades to "nothing found" so the rest
of the history still loads. Rate limiting is the one upstream condition that
propagates, since it applies to every remaining call equally.
"""

from app.features.engagements.domain.models import EngagementItem, EngagementKind
from app.features.engagements.domain.schemas import ENGAGEMENT_SCHEMAS
from app.features.engagements.pipeline.normalization import normalize_engagement
from app.infrastructure.observability.logging import get_logger
from app.services.hubspot_client import HubSpotAPIError, HubSpotClient

logger = get_logger(__name__)

ASSOCIATION_SEARCH_LIMIT = 100
CONTACT_NAME_PLACEHOLDER = "—"


class EngagementRepository:
    def __init__(self, client: HubSpotClient):
        self.client = client

    async def resolve_association_ids(
        self,
        entity_id: str,
        kind: EngagementKind,
        associated_object: str = "contact",
    ) -> list[str]:
        """Ids (at most 100, upstream order) of `kind` records associated with the entity."""
        schema = ENGAGEMENT_SCHEMAS[kind]
        filters = [
            {
                "propertyName": f"associations.{associated_object}",
                "operator": "EQ",
                "value": entity_id,
            }
        ]
        try:
            rows = await self.client.search_objects(
                schema.object_type,
                filters,
                properties=[schema.timestamp_fields[0]],
                limit=ASSOCIATION_SEARCH_LIMIT,
            )
        except HubSpotAPIError as e:
            if e.is_missing_scope:
                logger.warning(
                    "Missing HubSpot scope, skipping engagement kind",
                    engagement_kind=kind.value,
                    entity_id=entity_id,
                    error=str(e),
                )
            else:
                logger.error(
                    "Failed to resolve engagement associations",
                    engagement_kind=kind.value,
                    entity_id=entity_id,
                    status_code=e.status_code,
                    error=str(e),
                )
            return []

        ids: list[str] = []
        seen: set[str] = set()
        for row in rows:
            record_id = row.get("id")
            if record_id is None or isinstance(record_id, bool):
                continue
            record_id = str(record_id)
            if record_id not in seen:
                seen.add(record_id)
                ids.append(record_id)

        if ids:
            logger.debug(
                "Engagement associations resolved",
                engagement_kind=kind.value,
                entity_id=entity_id,
                count=len(ids),
            )
        return ids[:ASSOCIATION_SEARCH_LIMIT]

    async def fetch_engagement(self, kind: EngagementKind, record_id: str) -> EngagementItem | None:
        """Fetch and normalize one record; None when the fetch fails."""
        schema = ENGAGEMENT_SCHEMAS[kind]
        try:
            props = await self.client.get_object(schema.object_type, record_id, schema.properties)
        except HubSpotAPIError as e:
            logger.warning(
                "Dropping engagement record after fetch failure",
                engagement_kind=kind.value,
                record_id=record_id,
                status_code=e.status_code,
                error=str(e),
            )
            return None
        return normalize_engagement(kind, record_id, props)

    async def fetch_company_contact_ids(self, company_id: str, limit: int) -> list[str]:
        try:
            contact_ids = await self.client.get_associations("companies", company_id, "contacts")
        except HubSpotAPIError as e:
            logger.error(
                "Failed to resolve company contacts",
                company_id=company_id,
                status_code=e.status_code,
                error=str(e),
            )
            return []
        return contact_ids[:limit]

    async def fetch_contact_name(self, contact_id: str) -> str | None:
        """Display name for a contact, "—" when unnamed, None when the lookup fails."""
        try:
            props = await self.client.get_object("contacts", contact_id, ("firstname", "lastname"))
        except HubSpotAPIError as e:
            logger.warning("Failed to fetch contact name", contact_id=contact_id, error=str(e))
            return None
        parts = [props.get("firstname"), props.get("lastname")]
        name = " ".join(str(part) for part in parts if part).strip()
        return name or CONTACT_NAME_PLACEHOLDER
