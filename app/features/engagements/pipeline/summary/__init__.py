from .service import (
    DisabledEngagementSummarizer,
    EngagementSummarizer,
    LLMEngagementSummarizer,
    SummarizationUnavailable,
    align_display_summaries,
    build_summarizer,
)

__all__ = [
    "DisabledEngagementSummarizer",
    "EngagementSummarizer",
    "LLMEngagementSummarizer",
    "SummarizationUnavailable",
    "align_display_summaries",
    "build_summarizer",
]
