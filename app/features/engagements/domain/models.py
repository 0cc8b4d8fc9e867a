"""
Domain models for the engagements feature.

Normalized engagement records and the memoized aggregation result. Items are
frozen once normalized; ranking and summarization only ever read them.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

NO_ENGAGEMENT_HISTORY = "No engagement history."
SUMMARY_UNAVAILABLE = "Summary unavailable."
CONTEXT_SUMMARY_UNAVAILABLE = "Engagement summary unavailable."

BODY_MAX_CHARS = 5000


class EngagementKind(str, Enum):
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    NOTE = "note"


class EntityKind(str, Enum):
    CONTACT = "contact"
    COMPANY = "company"


def engagement_cache_key(entity_kind: EntityKind | str, entity_id: str) -> str:
    """Namespace ids so a contact and a company never share a cache slot."""
    kind = EntityKind(entity_kind)
    return f"{kind.value}:{entity_id}"


def format_timestamp(value: datetime) -> str:
    """Render an instant as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class EngagementItem:
    """One normalized call, email, meeting or note."""

    id: str
    kind: EngagementKind
    timestamp: datetime
    title: str
    body: str | None = None
    direction: str | None = None
    duration: str | None = None
    contact_name: str | None = None

    @property
    def timestamp_iso(self) -> str:
        return format_timestamp(self.timestamp)

    def with_contact_name(self, contact_name: str | None) -> "EngagementItem":
        return replace(self, contact_name=contact_name or self.contact_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "timestamp": self.timestamp_iso,
            "title": self.title,
            "body": self.body,
            "direction": self.direction,
            "duration": self.duration,
            "contactName": self.contact_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngagementItem":
        return cls(
            id=str(data["id"]),
            kind=EngagementKind(data["kind"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            title=data.get("title") or "",
            body=data.get("body"),
            direction=data.get("direction"),
            duration=data.get("duration"),
            contact_name=data.get("contactName"),
        )


@dataclass(slots=True)
class SummaryResult:
    """Parsed summarizer output."""

    display_summaries: list[str]
    context_summary: str


@dataclass(slots=True)
class EngagementPayload:
    """Consumer-facing result of one lookup."""

    engagements: list[EngagementItem] = field(default_factory=list)
    display_summaries: list[str] = field(default_factory=list)
    context_summary: str = NO_ENGAGEMENT_HISTORY
    # Set when the pipeline timed out; partial payloads are served but not cached.
    partial: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "engagements": [item.to_dict() for item in self.engagements],
            "displaySummaries": list(self.display_summaries),
            "contextSummary": self.context_summary,
        }


@dataclass(slots=True)
class CacheEntry:
    """Memoized payload for one entity plus the instant it was computed."""

    key: str
    payload: EngagementPayload
    fetched_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "fetchedAt": self.fetched_at.isoformat(),
            **self.payload.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        payload = EngagementPayload(
            engagements=[EngagementItem.from_dict(item) for item in data.get("engagements", [])],
            display_summaries=list(data.get("displaySummaries", [])),
            context_summary=data.get("contextSummary", NO_ENGAGEMENT_HISTORY),
        )
        return cls(
            key=data["key"],
            payload=payload,
            fetched_at=datetime.fromisoformat(data["fetchedAt"]),
        )
