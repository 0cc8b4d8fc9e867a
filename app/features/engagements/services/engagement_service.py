"""
Recent-engagements lookup.

Cache → aggregate → summarize → cache. Aggregation is bounded by an overall
timeout; whatever arrived before it fires is still ranked and served.
Summarization has its own bound; running past it counts as a summarizer
failure. Cache writes happen whenever aggregation completes, whether or not
summarization worked, so a flaky model never forces another round of CRM calls.
"""

import asyncio
import time

import structlog

from app.config import settings
from app.features.engagements.cache import EngagementCache, build_engagement_cache
from app.features.engagements.domain.models import (
    CONTEXT_SUMMARY_UNAVAILABLE,
    NO_ENGAGEMENT_HISTORY,
    EngagementItem,
    EngagementPayload,
    EntityKind,
    SummaryResult,
    engagement_cache_key,
)
from app.features.engagements.pipeline.aggregation import (
    AggregationRun,
    EngagementAggregationService,
    EngagementRepository,
)
from app.features.engagements.pipeline.summary import (
    EngagementSummarizer,
    SummarizationUnavailable,
    align_display_summaries,
    build_summarizer,
)
from app.infrastructure.observability.logging import get_logger, log_pipeline_completed
from app.services.hubspot_client import HubSpotError, get_hubspot_client

logger = get_logger(__name__)

CONTEXT_SENTINELS = {NO_ENGAGEMENT_HISTORY, CONTEXT_SUMMARY_UNAVAILABLE}


class EngagementService:
    def __init__(
        self,
        aggregator: EngagementAggregationService,
        summarizer: EngagementSummarizer,
        cache: EngagementCache,
        timeout_seconds: float | None = None,
        summary_timeout_seconds: float | None = None,
    ):
        self.aggregator = aggregator
        self.summarizer = summarizer
        self.cache = cache
        self.timeout_seconds = timeout_seconds or settings.ENGAGEMENT_PIPELINE_TIMEOUT_SECONDS
        self.summary_timeout_seconds = (
            summary_timeout_seconds or settings.ENGAGEMENT_SUMMARY_TIMEOUT_SECONDS
        )

    async def get_engagements(self, entity_kind: EntityKind, entity_id: str) -> EngagementPayload:
        """Recent engagements for a contact or company, from cache when fresh."""
        entity_kind = EntityKind(entity_kind)
        key = engagement_cache_key(entity_kind, entity_id)

        entry, hit = await self.cache.get_or_load(
            key, lambda: self._compute(entity_kind, entity_id, key)
        )
        if hit:
            logger.debug("Serving cached engagements", key=key)
        return entry.payload

    async def get_context_summary(self, entity_kind: EntityKind, entity_id: str) -> str | None:
        """
        Context summary for a chat consumer, or None.

        Never raises for upstream trouble: chat works without engagement context.
        """
        try:
            payload = await self.get_engagements(entity_kind, entity_id)
        except HubSpotError as e:
            logger.warning(
                "Engagement context unavailable",
                entity_kind=EntityKind(entity_kind).value,
                entity_id=entity_id,
                error=str(e),
            )
            return None

        summary = payload.context_summary.strip()
        if not summary or summary in CONTEXT_SENTINELS:
            return None
        return summary

    async def _compute(self, entity_kind: EntityKind, entity_id: str, key: str) -> EngagementPayload:
        with structlog.contextvars.bound_contextvars(cache_key=key, entity_kind=entity_kind.value):
            started = time.time()
            logger.info("Fetching engagements", entity_kind=entity_kind.value, entity_id=entity_id)

            engagements, timed_out = await self._aggregate(entity_kind, entity_id)
            payload, summarized = await self._summarize(engagements)
            payload.partial = timed_out

            log_pipeline_completed(
                entity_kind=entity_kind.value,
                entity_id=entity_id,
                engagement_count=len(engagements),
                summarized=summarized,
                duration_ms=round((time.time() - started) * 1000, 2),
                timed_out=timed_out,
            )
            return payload

    async def _aggregate(
        self, entity_kind: EntityKind, entity_id: str
    ) -> tuple[list[EngagementItem], bool]:
        run = AggregationRun()
        if entity_kind is EntityKind.COMPANY:
            fetch = self.aggregator.fetch_for_company(entity_id, run=run)
        else:
            fetch = self.aggregator.fetch_for_contact(entity_id, run=run)

        try:
            return await asyncio.wait_for(fetch, timeout=self.timeout_seconds), False
        except TimeoutError:
            partial = run.ranked(self.aggregator.limit)
            logger.warning(
                "Engagement aggregation timed out, serving partial results",
                entity_kind=entity_kind.value,
                entity_id=entity_id,
                timeout_seconds=self.timeout_seconds,
                collected=len(run.collected),
                returned=len(partial),
            )
            return partial, True

    async def _run_summarizer(self, engagements: list[EngagementItem]) -> SummaryResult:
        try:
            return await asyncio.wait_for(
                self.summarizer.summarize(engagements), timeout=self.summary_timeout_seconds
            )
        except TimeoutError as e:
            raise SummarizationUnavailable(
                f"Summarization timed out after {self.summary_timeout_seconds}s"
            ) from e

    async def _summarize(self, engagements: list[EngagementItem]) -> tuple[EngagementPayload, bool]:
        try:
            result = await self._run_summarizer(engagements)
            display_summaries = result.display_summaries
            context_summary = result.context_summary
            summarized = True
        except SummarizationUnavailable as e:
            logger.warning(
                "Serving engagements without summaries",
                engagement_count=len(engagements),
                summarizer_enabled=self.summarizer.enabled,
                reason=str(e),
            )
            display_summaries = []
            context_summary = CONTEXT_SUMMARY_UNAVAILABLE
            summarized = False

        payload = EngagementPayload(
            engagements=list(engagements),
            display_summaries=align_display_summaries(display_summaries, len(engagements)),
            context_summary=context_summary,
        )
        return payload, summarized


_engagement_service: EngagementService | None = None


def get_engagement_service() -> EngagementService:
    """
    Process-wide service wired from settings.

    Raises:
        HubSpotConfigurationError: If no HubSpot access token is configured
    """
    global _engagement_service
    if _engagement_service is None:
        repository = EngagementRepository(get_hubspot_client())
        _engagement_service = EngagementService(
            aggregator=EngagementAggregationService(repository),
            summarizer=build_summarizer(settings.OPENAI_API_KEY),
            cache=build_engagement_cache(),
        )
    return _engagement_service


def reset_engagement_service() -> None:
    global _engagement_service
    _engagement_service = None
