from datetime import UTC, datetime, timedelta

import pytest

from app.features.engagements.domain.models import EngagementItem, EngagementKind, SummaryResult
from app.features.engagements.pipeline.summary import EngagementSummarizer

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None


class FakeClock:
    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSummarizer(EngagementSummarizer):
    """Echoes one summary per item and counts model calls."""

    def __init__(self, summaries: list[str] | None = None, context: str = "Context summary."):
        self.summaries = summaries
        self.context = context
        self.calls = 0

    async def _summarize(self, items):
        self.calls += 1
        summaries = self.summaries
        if summaries is None:
            summaries = [f"Summary of {item.title}" for item in items]
        return SummaryResult(display_summaries=list(summaries), context_summary=self.context)


def make_item(
    record_id: str,
    kind: EngagementKind = EngagementKind.CALL,
    minutes_ago: int = 0,
    title: str | None = None,
    **kwargs,
) -> EngagementItem:
    return EngagementItem(
        id=record_id,
        kind=kind,
        timestamp=BASE_TIME - timedelta(minutes=minutes_ago),
        title=title or kind.value.capitalize(),
        **kwargs,
    )


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_summarizer():
    return RecordingSummarizer()


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def summarizer_factory():
    return RecordingSummarizer
