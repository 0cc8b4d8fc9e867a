import asyncio

import pytest

from app.features.engagements.domain.models import EngagementKind
from app.features.engagements.pipeline.aggregation import (
    AggregationRun,
    EngagementAggregationService,
    EngagementRepository,
    rank_engagements,
)
from app.services.hubspot_client import HubSpotAPIError, HubSpotRateLimitError


class StubRepository:
    """In-memory stand-in for EngagementRepository."""

    def __init__(self, items_by_contact, company_contacts=None, names=None):
        self.items_by_contact = items_by_contact
        self.company_contacts = company_contacts or {}
        self.names = names or {}
        self.contact_limit_requested = None

    async def resolve_association_ids(self, entity_id, kind, associated_object="contact"):
        return [
            item.id for item in self.items_by_contact.get(entity_id, []) if item.kind is kind
        ]

    async def fetch_engagement(self, kind, record_id):
        for items in self.items_by_contact.values():
            for item in items:
                if item.id == record_id and item.kind is kind:
                    return item
        return None

    async def fetch_company_contact_ids(self, company_id, limit):
        self.contact_limit_requested = limit
        return self.company_contacts.get(company_id, [])[:limit]

    async def fetch_contact_name(self, contact_id):
        return self.names.get(contact_id)


class FakeHubSpotClient:
    """Search/get responses keyed by object type; optional errors per object type."""

    def __init__(self, search_results, properties, search_errors=None, get_errors=None):
        self.search_results = search_results
        self.properties = properties
        self.search_errors = search_errors or {}
        self.get_errors = get_errors or set()

    async def search_objects(self, object_type, filters, properties, limit=100):
        if object_type in self.search_errors:
            raise self.search_errors[object_type]
        return [{"id": record_id} for record_id in self.search_results.get(object_type, [])]

    async def get_object(self, object_type, object_id, properties):
        if object_id in self.get_errors:
            raise HubSpotAPIError("Not found", status_code=404)
        return self.properties[object_id]

    async def get_associations(self, from_object_type, object_id, to_object_type):
        return []


def test_rank_is_sorted_and_truncated(item_factory):
    items = [item_factory(str(i), minutes_ago=m) for i, m in enumerate([30, 5, 90, 1, 60])]

    ranked = rank_engagements(items, limit=3)

    assert [item.id for item in ranked] == ["3", "1", "0"]
    assert all(a.timestamp >= b.timestamp for a, b in zip(ranked, ranked[1:]))


def test_rank_keeps_input_order_for_ties(item_factory):
    items = [item_factory("a", minutes_ago=5), item_factory("b", minutes_ago=5), item_factory("c")]

    assert [item.id for item in rank_engagements(items, limit=3)] == ["c", "a", "b"]


def test_aggregation_run_orders_by_fetch_position(item_factory):
    run = AggregationRun()
    run.add((1, 0), item_factory("late-fetch", minutes_ago=10))
    run.add((0, 0), item_factory("early-fetch", minutes_ago=10))

    assert [item.id for item in run.ranked(2)] == ["early-fetch", "late-fetch"]


@pytest.mark.asyncio
async def test_contact_merges_all_kinds(item_factory):
    items = [
        item_factory("c1", EngagementKind.CALL, minutes_ago=40),
        item_factory("e1", EngagementKind.EMAIL, minutes_ago=10),
        item_factory("m1", EngagementKind.MEETING, minutes_ago=30),
        item_factory("n1", EngagementKind.NOTE, minutes_ago=20),
    ]
    service = EngagementAggregationService(StubRepository({"101": items}), limit=3)

    result = await service.fetch_for_contact("101")

    assert [item.id for item in result] == ["e1", "n1", "m1"]


@pytest.mark.asyncio
async def test_company_tags_contact_names_and_caps_each_contact(item_factory):
    repo = StubRepository(
        {
            "c-a": [item_factory(f"a{i}", minutes_ago=i * 10) for i in range(8)],
            "c-b": [item_factory("b0", EngagementKind.NOTE, minutes_ago=5)],
        },
        company_contacts={"co-1": ["c-a", "c-b"]},
        names={"c-a": "Ada Lovelace", "c-b": "Grace Hopper"},
    )
    service = EngagementAggregationService(repo, limit=3, company_contacts_limit=10)
    run = AggregationRun()

    result = await service.fetch_for_company("co-1", run=run)

    assert [item.id for item in result] == ["a0", "b0", "a1"]
    assert result[0].contact_name == "Ada Lovelace"
    assert result[1].contact_name == "Grace Hopper"
    assert run.per_contact_limit == 6
    assert [item.id for item in run.items()] == ["a0", "a1", "a2", "a3", "a4", "a5", "b0"]
    assert repo.contact_limit_requested == 10


@pytest.mark.asyncio
async def test_company_run_keeps_every_contacts_progress_on_timeout(item_factory):
    class SlowNotesRepository(StubRepository):
        async def resolve_association_ids(self, entity_id, kind, associated_object="contact"):
            if kind is EngagementKind.NOTE:
                await asyncio.sleep(10)
            return await super().resolve_association_ids(entity_id, kind, associated_object)

    repo = SlowNotesRepository(
        {
            "c-a": [item_factory("a-call"), item_factory("a-note", EngagementKind.NOTE)],
            "c-b": [item_factory("b-email", EngagementKind.EMAIL, minutes_ago=5)],
        },
        company_contacts={"co-1": ["c-a", "c-b"]},
        names={"c-a": "Ada Lovelace", "c-b": "Grace Hopper"},
    )
    service = EngagementAggregationService(repo, limit=3)
    run = AggregationRun()

    with pytest.raises(TimeoutError):
        await asyncio.wait_for(service.fetch_for_company("co-1", run=run), timeout=0.1)

    partial = run.ranked(3)
    assert [item.id for item in partial] == ["a-call", "b-email"]
    assert [item.contact_name for item in partial] == ["Ada Lovelace", "Grace Hopper"]


@pytest.mark.asyncio
async def test_company_without_contacts_is_empty():
    service = EngagementAggregationService(StubRepository({}), limit=3)

    assert await service.fetch_for_company("co-missing") == []


@pytest.mark.asyncio
async def test_missing_meeting_scope_keeps_other_kinds():
    client = FakeHubSpotClient(
        search_results={
            "calls": ["c1"],
            "emails": ["e1"],
            "meetings": ["m1"],
            "notes": ["n1"],
        },
        properties={
            "c1": {"hs_timestamp": "1700000000000"},
            "e1": {"hs_timestamp": "1700000100000"},
            "m1": {"hs_timestamp": "1700000200000"},
            "n1": {"hs_created_date": "1700000300000"},
        },
        search_errors={
            "meetings": HubSpotAPIError(
                "This app hasn't been granted all required scopes",
                status_code=403,
                category="MISSING_SCOPES",
            )
        },
    )
    service = EngagementAggregationService(EngagementRepository(client), limit=10)

    result = await service.fetch_for_contact("101")

    kinds = {item.kind for item in result}
    assert EngagementKind.MEETING not in kinds
    assert kinds == {EngagementKind.CALL, EngagementKind.EMAIL, EngagementKind.NOTE}


@pytest.mark.asyncio
async def test_other_resolver_errors_degrade_to_empty_kind():
    client = FakeHubSpotClient(
        search_results={"calls": ["c1"]},
        properties={"c1": {"hs_timestamp": "1700000000000"}},
        search_errors={"emails": HubSpotAPIError("Server error", status_code=500)},
    )
    service = EngagementAggregationService(EngagementRepository(client), limit=10)

    result = await service.fetch_for_contact("101")

    assert [item.id for item in result] == ["c1"]


@pytest.mark.asyncio
async def test_single_record_failure_is_dropped():
    client = FakeHubSpotClient(
        search_results={"calls": ["c1", "c2", "c3"]},
        properties={
            "c1": {"hs_timestamp": "1700000000000"},
            "c3": {"hs_timestamp": "1700000200000"},
        },
        get_errors={"c2"},
    )
    service = EngagementAggregationService(EngagementRepository(client), limit=10)

    result = await service.fetch_for_contact("101")

    assert [item.id for item in result] == ["c3", "c1"]


@pytest.mark.asyncio
async def test_rate_limit_propagates():
    client = FakeHubSpotClient(
        search_results={},
        properties={},
        search_errors={"notes": HubSpotRateLimitError("Too many requests", retry_after=10)},
    )
    service = EngagementAggregationService(EngagementRepository(client), limit=3)

    with pytest.raises(HubSpotRateLimitError):
        await service.fetch_for_contact("101")


@pytest.mark.asyncio
async def test_run_keeps_items_collected_before_timeout(item_factory):
    class SlowNotesRepository(StubRepository):
        async def resolve_association_ids(self, entity_id, kind, associated_object="contact"):
            if kind is EngagementKind.NOTE:
                await asyncio.sleep(10)
            return await super().resolve_association_ids(entity_id, kind, associated_object)

    repo = SlowNotesRepository(
        {"101": [item_factory("c1"), item_factory("n1", EngagementKind.NOTE)]}
    )
    service = EngagementAggregationService(repo, limit=3)
    run = AggregationRun()

    with pytest.raises(TimeoutError):
        await asyncio.wait_for(service.fetch_for_contact("101", run=run), timeout=0.1)

    assert [item.id for item in run.ranked(3)] == ["c1"]


@pytest.mark.asyncio
async def test_contact_name_placeholder_and_failure():
    class NameClient(FakeHubSpotClient):
        async def get_object(self, object_type, object_id, properties):
            if object_id == "broken":
                raise HubSpotAPIError("Not found", status_code=404)
            return self.properties[object_id]

    repo = EngagementRepository(
        NameClient(
            search_results={},
            properties={
                "named": {"firstname": "Ada", "lastname": "Lovelace"},
                "first-only": {"firstname": "Grace", "lastname": None},
                "unnamed": {"firstname": "", "lastname": None},
            },
        )
    )

    assert await repo.fetch_contact_name("named") == "Ada Lovelace"
    assert await repo.fetch_contact_name("first-only") == "Grace"
    assert await repo.fetch_contact_name("unnamed") == "—"
    assert await repo.fetch_contact_name("broken") is None


@pytest.mark.asyncio
async def test_resolver_dedupes_ids_in_upstream_order():
    client = FakeHubSpotClient(search_results={"notes": ["n2", "n1", "n2", 7]}, properties={})
    repo = EngagementRepository(client)

    assert await repo.resolve_association_ids("101", EngagementKind.NOTE) == ["n2", "n1", "7"]
