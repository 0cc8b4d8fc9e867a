"""
Engagement routes.

Recent engagements for HubSpot contacts and companies, plus the engagement
block the chat view appends to its context.
"""

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .schemas import EngagementContextResponse, EngagementsResponse
from app.features.engagements.chat_context import build_context_from_engagements
from app.features.engagements.domain.models import EntityKind
from app.features.engagements.services import EngagementService, get_engagement_service
from app.infrastructure.observability.logging import get_logger
from app.services.hubspot_client import (
    HubSpotConfigurationError,
    HubSpotError,
    HubSpotRateLimitError,
)

router = APIRouter(tags=["engagements"])
logger = get_logger(__name__)

UPSTREAM_FAILURE_MESSAGE = "Couldn't load engagement history. Try again."


def engagement_service_dependency() -> EngagementService:
    try:
        return get_engagement_service()
    except HubSpotConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "HubSpot not configured"},
        ) from e


def _raise_for_upstream(error: HubSpotError, entity_kind: EntityKind, entity_id: str) -> NoReturn:
    """Map CRM failures onto the HTTP boundary."""
    if isinstance(error, HubSpotConfigurationError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "HubSpot not configured"},
        ) from error

    if isinstance(error, HubSpotRateLimitError):
        headers = {"Retry-After": str(error.retry_after)} if error.retry_after is not None else None
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": UPSTREAM_FAILURE_MESSAGE,
                "retry_after": error.retry_after,
            },
            headers=headers,
        ) from error

    logger.error(
        f"{entity_kind.value.capitalize()} engagements error",
        entity_id=entity_id,
        status_code=error.status_code,
        error=str(error),
    )
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"error": UPSTREAM_FAILURE_MESSAGE},
    ) from error


async def _engagements_response(
    service: EngagementService, entity_kind: EntityKind, entity_id: str
) -> EngagementsResponse:
    entity_id = entity_id.strip()
    if not entity_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": f"Missing {entity_kind.value} id"},
        )

    try:
        payload = await service.get_engagements(entity_kind, entity_id)
    except HubSpotError as e:
        _raise_for_upstream(e, entity_kind, entity_id)

    return EngagementsResponse.from_payload(payload)


@router.get("/hubspot/contacts/{contact_id}/engagements", response_model=EngagementsResponse)
async def get_contact_engagements(
    contact_id: str,
    service: EngagementService = Depends(engagement_service_dependency),
):
    return await _engagements_response(service, EntityKind.CONTACT, contact_id)


@router.get("/hubspot/companies/{company_id}/engagements", response_model=EngagementsResponse)
async def get_company_engagements(
    company_id: str,
    service: EngagementService = Depends(engagement_service_dependency),
):
    return await _engagements_response(service, EntityKind.COMPANY, company_id)


@router.get("/chat/context/engagements", response_model=EngagementContextResponse)
async def get_engagement_context(
    entity_type: EntityKind = Query(..., alias="type"),
    entity_id: str = Query(..., alias="id", min_length=1),
    service: EngagementService = Depends(engagement_service_dependency),
):
    """Engagement context for chat; empty rather than an error when history can't load."""
    summary = await service.get_context_summary(entity_type, entity_id)
    return EngagementContextResponse(context=build_context_from_engagements(summary))
