"""
Engagement aggregation service.

Fans the resolver and fetcher out across the four engagement kinds (and, for a
company, across its contacts), then merges and ranks the results newest first.
Outbound concurrency is capped by the HubSpot client's shared semaphore.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, field
from itertools import groupby

from .repository import EngagementRepository
from app.config import settings
from app.features.engagements.domain.models import EngagementItem, EngagementKind
from app.features.engagements.domain.schemas import ENGAGEMENT_SCHEMAS
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

COMPANY_CANDIDATE_MULTIPLIER = 2

Order = tuple[int, ...]


def rank_engagements(items: Iterable[EngagementItem], limit: int) -> list[EngagementItem]:
    """Newest first, truncated to `limit`. Equal timestamps keep their input order."""
    return sorted(items, key=lambda item: item.timestamp, reverse=True)[: max(0, limit)]


@dataclass
class AggregationRun:
    """
    Items gathered by one aggregation, tagged with their fetch position.

    Lives outside the coroutine doing the work so a caller that times the
    run out can still rank whatever had arrived.

    For a company run every order starts with the contact index.
    `per_contact_limit` then caps each contact's share, and names recorded
    with `name_contact` are attached when the run is read.
    """

    collected: list[tuple[Order, EngagementItem]] = field(default_factory=list)
    per_contact_limit: int | None = None
    contact_names: dict[int, str | None] = field(default_factory=dict)

    def add(self, order: Order, item: EngagementItem) -> None:
        self.collected.append((order, item))

    def name_contact(self, contact_index: int, name: str | None) -> None:
        self.contact_names[contact_index] = name

    def items(self) -> list[EngagementItem]:
        ordered = sorted(self.collected, key=lambda entry: entry[0])
        if self.per_contact_limit is None:
            return [item for _, item in ordered]

        items: list[EngagementItem] = []
        for contact_index, group in groupby(ordered, key=lambda entry: entry[0][0]):
            name = self.contact_names.get(contact_index)
            ranked = rank_engagements((item for _, item in group), self.per_contact_limit)
            items.extend(item.with_contact_name(name) for item in ranked)
        return items

    def ranked(self, limit: int) -> list[EngagementItem]:
        return rank_engagements(self.items(), limit)


async def _gather_all(aws: Iterable[Awaitable[None]]) -> None:
    """Run everything concurrently; if one fails, cancel the siblings before re-raising."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class EngagementAggregationService:
    def __init__(
        self,
        repository: EngagementRepository,
        limit: int | None = None,
        company_contacts_limit: int | None = None,
    ):
        pipeline_config = settings.get_pipeline_config()
        self.repository = repository
        self.limit = limit or pipeline_config["limit"]
        self.company_contacts_limit = (
            company_contacts_limit or pipeline_config["company_contacts_limit"]
        )

    async def fetch_for_contact(
        self,
        contact_id: str,
        limit: int | None = None,
        run: AggregationRun | None = None,
    ) -> list[EngagementItem]:
        """Last `limit` engagements (calls, emails, meetings, notes) for a contact."""
        limit = limit or self.limit
        run = run if run is not None else AggregationRun()

        await self._collect_contact(contact_id, (), run)

        ranked = run.ranked(limit)
        logger.info(
            "Contact engagements aggregated",
            contact_id=contact_id,
            collected=len(run.collected),
            returned=len(ranked),
        )
        return ranked

    async def _collect_contact(self, contact_id: str, order_prefix: Order, run: AggregationRun) -> None:
        await _gather_all(
            self._collect_kind(contact_id, order_prefix + (kind_index,), kind, run)
            for kind_index, kind in enumerate(ENGAGEMENT_SCHEMAS)
        )

    async def _collect_kind(
        self,
        contact_id: str,
        order_prefix: Order,
        kind: EngagementKind,
        run: AggregationRun,
    ) -> None:
        record_ids = await self.repository.resolve_association_ids(contact_id, kind)

        async def fetch_one(id_index: int, record_id: str) -> None:
            item = await self.repository.fetch_engagement(kind, record_id)
            if item is not None:
                run.add(order_prefix + (id_index,), item)

        await _gather_all(
            fetch_one(id_index, record_id) for id_index, record_id in enumerate(record_ids)
        )

    async def fetch_for_company(
        self,
        company_id: str,
        limit: int | None = None,
        run: AggregationRun | None = None,
    ) -> list[EngagementItem]:
        """
        Last `limit` engagements across a company's contacts.

        Each contact contributes up to twice the final limit so the company-wide
        cut still sees enough candidates from busy contacts. Items land in `run`
        as they are fetched, so a timed-out company run keeps every contact's
        progress.
        """
        limit = limit or self.limit
        run = run if run is not None else AggregationRun()
        run.per_contact_limit = limit * COMPANY_CANDIDATE_MULTIPLIER

        contact_ids = await self.repository.fetch_company_contact_ids(
            company_id, self.company_contacts_limit
        )

        async def record_name(contact_index: int, contact_id: str) -> None:
            run.name_contact(contact_index, await self.repository.fetch_contact_name(contact_id))

        async def collect_contact(contact_index: int, contact_id: str) -> None:
            await _gather_all(
                [
                    record_name(contact_index, contact_id),
                    self._collect_contact(contact_id, (contact_index,), run),
                ]
            )

        await _gather_all(
            collect_contact(contact_index, contact_id)
            for contact_index, contact_id in enumerate(contact_ids)
        )

        ranked = run.ranked(limit)
        logger.info(
            "Company engagements aggregated",
            company_id=company_id,
            contact_count=len(contact_ids),
            collected=len(run.collected),
            returned=len(ranked),
        )
        return ranked
