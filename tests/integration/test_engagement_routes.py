import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.features.engagements.api.router import engagement_service_dependency
from app.features.engagements.domain.models import EngagementKind, EngagementPayload, EntityKind
from app.features.engagements.services import engagement_service as engagement_service_module
from app.main import app
from app.services import hubspot_client as hubspot_client_module
from app.services.hubspot_client import HubSpotAPIError, HubSpotRateLimitError


class FakeEngagementService:
    def __init__(self, payload=None, error=None, context=None):
        self.payload = payload or EngagementPayload()
        self.error = error
        self.context = context
        self.requests = []

    async def get_engagements(self, entity_kind, entity_id):
        self.requests.append((EntityKind(entity_kind), entity_id))
        if self.error is not None:
            raise self.error
        return self.payload

    async def get_context_summary(self, entity_kind, entity_id):
        self.requests.append((EntityKind(entity_kind), entity_id))
        return self.context


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def use_service():
    def _use(service):
        app.dependency_overrides[engagement_service_dependency] = lambda: service
        return service

    return _use


def test_contact_engagements_are_camel_cased(client, use_service, item_factory):
    payload = EngagementPayload(
        engagements=[
            item_factory("c1", title="Call (95s)", direction="OUTBOUND", duration="95"),
            item_factory("e1", EngagementKind.EMAIL, minutes_ago=10, title="Pricing"),
        ],
        display_summaries=["Intro call", "Sent pricing"],
        context_summary="Two touches this week.",
    )
    service = use_service(FakeEngagementService(payload=payload))

    response = client.get("/hubspot/contacts/101/engagements")

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"engagements", "displaySummaries", "contextSummary"}
    assert body["displaySummaries"] == ["Intro call", "Sent pricing"]
    assert body["contextSummary"] == "Two touches this week."
    first = body["engagements"][0]
    assert first["id"] == "c1"
    assert first["kind"] == "call"
    assert first["timestamp"] == "2025-03-01T12:00:00.000Z"
    assert first["direction"] == "OUTBOUND"
    assert first["contactName"] is None
    assert service.requests == [(EntityKind.CONTACT, "101")]


def test_company_engagements_include_contact_names(client, use_service, item_factory):
    payload = EngagementPayload(
        engagements=[item_factory("n1", EngagementKind.NOTE, contact_name="Ada Lovelace")],
        display_summaries=["Note about renewal"],
        context_summary="One note.",
    )
    service = use_service(FakeEngagementService(payload=payload))

    response = client.get("/hubspot/companies/7/engagements")

    assert response.status_code == 200
    assert response.json()["engagements"][0]["contactName"] == "Ada Lovelace"
    assert service.requests == [(EntityKind.COMPANY, "7")]


def test_empty_history(client, use_service):
    use_service(FakeEngagementService())

    response = client.get("/hubspot/contacts/101/engagements")

    assert response.json() == {
        "engagements": [],
        "displaySummaries": [],
        "contextSummary": "No engagement history.",
    }


def test_blank_id_is_rejected(client, use_service):
    service = use_service(FakeEngagementService())

    response = client.get("/hubspot/contacts/%20/engagements")

    assert response.status_code == 400
    assert service.requests == []


def test_rate_limit_maps_to_429_with_retry_after(client, use_service):
    use_service(FakeEngagementService(error=HubSpotRateLimitError("slow down", retry_after=10)))

    response = client.get("/hubspot/contacts/101/engagements")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "10"
    assert response.json()["detail"]["error"] == "rate_limit_exceeded"
    assert response.json()["detail"]["retry_after"] == 10


def test_rate_limit_without_retry_after_has_no_header(client, use_service):
    use_service(FakeEngagementService(error=HubSpotRateLimitError("slow down")))

    response = client.get("/hubspot/companies/7/engagements")

    assert response.status_code == 429
    assert "Retry-After" not in response.headers


def test_upstream_failure_maps_to_502(client, use_service):
    use_service(FakeEngagementService(error=HubSpotAPIError("boom", status_code=500)))

    response = client.get("/hubspot/companies/7/engagements")

    assert response.status_code == 502
    assert response.json()["detail"] == {"error": "Couldn't load engagement history. Try again."}


def test_missing_token_maps_to_503(client, monkeypatch):
    monkeypatch.setattr(settings, "HUBSPOT_ACCESS_TOKEN", None)
    monkeypatch.setattr(hubspot_client_module, "_hubspot_client", None)
    monkeypatch.setattr(engagement_service_module, "_engagement_service", None)

    response = client.get("/hubspot/contacts/101/engagements")

    assert response.status_code == 503
    assert response.json()["detail"] == {"error": "HubSpot not configured"}


def test_chat_context_wraps_summary(client, use_service):
    service = use_service(FakeEngagementService(context="Met at the booth."))

    response = client.get("/chat/context/engagements", params={"type": "company", "id": "7"})

    assert response.status_code == 200
    assert response.json() == {"context": "\n\nEngagement history (summary):\nMet at the booth."}
    assert service.requests == [(EntityKind.COMPANY, "7")]


def test_chat_context_is_empty_without_summary(client, use_service):
    use_service(FakeEngagementService(context=None))

    response = client.get("/chat/context/engagements", params={"type": "contact", "id": "101"})

    assert response.json() == {"context": ""}


def test_chat_context_rejects_unknown_type(client, use_service):
    use_service(FakeEngagementService())

    response = client.get("/chat/context/engagements", params={"type": "deal", "id": "1"})

    assert response.status_code == 422
