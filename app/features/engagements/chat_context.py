"""Chat-context rendering of an engagement context summary."""


def build_context_from_engagements(context_summary: str | None) -> str:
    if not context_summary or not context_summary.strip():
        return ""
    return "\n\nEngagement history (summary):\n" + context_summary.strip()
