"""
Engagement summarization.

Turns a ranked engagement list into one short display summary per item plus
a single context summary for chat. Summarization is a capability: when no
model is configured the disabled implementation stands in, and every failure
surfaces as SummarizationUnavailable so callers can serve raw items instead.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from app.features.engagements.domain.models import (
    NO_ENGAGEMENT_HISTORY,
    SUMMARY_UNAVAILABLE,
    EngagementItem,
    SummaryResult,
)
from app.infrastructure.observability.logging import get_logger
from app.services.openai_service import OpenAIService, OpenAIServiceError

logger = get_logger(__name__)

PROMPT_BODY_MAX_CHARS = 3000
DISPLAY_SUMMARY_MAX_TOKENS = 1024

SYSTEM_PROMPT = f"""You are a sales assistant. Given a list of CRM engagements (calls, emails, meetings, notes), produce two outputs in valid JSON only:

1. "displaySummaries": an array of strings, one per engagement in the same order. Each string is a brief, readable summary for a UI card (who, what, outcome). Maximum ~{DISPLAY_SUMMARY_MAX_TOKENS} tokens per summary. No markdown.

2. "contextSummary": a single comprehensive summary of all engagements for an AI to use as context when answering questions about this contact/company. Include dates, participants, key topics, outcomes, next steps, and any notable details. Be thorough so the AI can answer follow-up questions accurately.

Return ONLY valid JSON in this exact shape (no code block):
{{"displaySummaries":["...","..."], "contextSummary":"..."}}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)


class SummarizationUnavailable(Exception):
    """The summarizer could not produce a usable result. Never fatal to a lookup."""


def engagement_to_text(item: EngagementItem, index: int) -> str:
    parts = [
        f"[{index + 1}] Type: {item.kind.value}",
        f"Date: {item.timestamp_iso}",
        f"Title: {item.title}" if item.title else "",
        f"Direction: {item.direction}" if item.direction else "",
        f"Duration: {item.duration}" if item.duration else "",
        f"Contact: {item.contact_name}" if item.contact_name else "",
        f"Content: {item.body[:PROMPT_BODY_MAX_CHARS]}" if item.body else "",
    ]
    return "\n".join(part for part in parts if part)


def build_summary_prompt(items: Sequence[EngagementItem]) -> str:
    return "\n\n---\n\n".join(engagement_to_text(item, i) for i, item in enumerate(items))


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def parse_summary_response(raw: str) -> SummaryResult:
    """
    Parse the model reply as strict JSON of shape
    {"displaySummaries": [str, ...], "contextSummary": str}.

    Raises:
        SummarizationUnavailable: On invalid JSON or any schema mismatch
    """
    try:
        data: Any = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as e:
        logger.warning("Summarizer returned invalid JSON", error=str(e), raw_result=raw[:200])
        raise SummarizationUnavailable("Summarizer returned invalid JSON") from e

    if not isinstance(data, dict):
        raise SummarizationUnavailable("Summarizer response is not a JSON object")

    display_summaries = data.get("displaySummaries")
    context_summary = data.get("contextSummary")

    if not isinstance(display_summaries, list) or not all(
        isinstance(summary, str) for summary in display_summaries
    ):
        raise SummarizationUnavailable("displaySummaries must be a list of strings")
    if not isinstance(context_summary, str):
        raise SummarizationUnavailable("contextSummary must be a string")

    return SummaryResult(display_summaries=display_summaries, context_summary=context_summary)


def align_display_summaries(summaries: Sequence[str], item_count: int) -> list[str]:
    """Pad with the placeholder, or trim, so there is exactly one summary per item."""
    aligned = list(summaries[:item_count])
    aligned.extend(SUMMARY_UNAVAILABLE for _ in range(item_count - len(aligned)))
    return aligned


class EngagementSummarizer(ABC):
    """Summarization capability. Zero items never reach the model."""

    enabled: bool = True

    async def summarize(self, items: Sequence[EngagementItem]) -> SummaryResult:
        if not items:
            return SummaryResult(display_summaries=[], context_summary=NO_ENGAGEMENT_HISTORY)
        return await self._summarize(items)

    @abstractmethod
    async def _summarize(self, items: Sequence[EngagementItem]) -> SummaryResult:
        """Summarize a non-empty list or raise SummarizationUnavailable."""


class DisabledEngagementSummarizer(EngagementSummarizer):
    """Stand-in used when no model credential is configured."""

    enabled = False

    async def _summarize(self, items: Sequence[EngagementItem]) -> SummaryResult:
        raise SummarizationUnavailable("Summarization is not configured")


class LLMEngagementSummarizer(EngagementSummarizer):
    def __init__(self, completion_service: OpenAIService):
        self.completion_service = completion_service

    async def _summarize(self, items: Sequence[EngagementItem]) -> SummaryResult:
        prompt = build_summary_prompt(items)
        logger.info("Requesting engagement summaries", item_count=len(items), prompt_length=len(prompt))

        try:
            raw = await self.completion_service.complete_json(SYSTEM_PROMPT, prompt)
        except OpenAIServiceError as e:
            logger.warning("Engagement summarization failed", error=str(e), api_error=e.api_error)
            raise SummarizationUnavailable(str(e)) from e
        except Exception as e:
            logger.error(
                "Unexpected error during engagement summarization",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SummarizationUnavailable(f"Summarization failed: {e}") from e

        result = parse_summary_response(raw)
        if len(result.display_summaries) != len(items):
            logger.warning(
                "Summary count does not match engagement count",
                expected=len(items),
                received=len(result.display_summaries),
            )
        return result


def build_summarizer(api_key: str | None) -> EngagementSummarizer:
    """Pick the LLM summarizer when a key is present, the disabled one otherwise."""
    if not api_key:
        logger.info("No OpenAI key configured, engagement summaries disabled")
        return DisabledEngagementSummarizer()
    return LLMEngagementSummarizer(OpenAIService(api_key=api_key))
