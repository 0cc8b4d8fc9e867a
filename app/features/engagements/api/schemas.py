"""
Engagement API response models.
Field names serialize in camelCase to match the web client.
"""

from pydantic import BaseModel, ConfigDict, Field

from app.features.engagements.domain.models import EngagementItem, EngagementPayload


class EngagementItemResponse(BaseModel):
    """One normalized engagement."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="HubSpot record ID")
    kind: str = Field(..., description="call, email, meeting or note")
    timestamp: str = Field(..., description="ISO-8601 UTC instant")
    title: str = Field(..., description="Short label")
    body: str | None = Field(None, description="Record text, capped at 5000 characters")
    direction: str | None = Field(None, description="Call/email direction")
    duration: str | None = Field(None, description="Call duration")
    contact_name: str | None = Field(
        None, alias="contactName", description="Owning contact (company lookups only)"
    )

    @classmethod
    def from_domain(cls, item: EngagementItem) -> "EngagementItemResponse":
        return cls.model_validate(item.to_dict())


class EngagementsResponse(BaseModel):
    """Ranked engagements with one display summary per item."""

    model_config = ConfigDict(populate_by_name=True)

    engagements: list[EngagementItemResponse] = Field(..., description="Newest first")
    display_summaries: list[str] = Field(
        ..., alias="displaySummaries", description="Same length and order as engagements"
    )
    context_summary: str = Field(
        ..., alias="contextSummary", description="Summary of all engagements for chat context"
    )

    @classmethod
    def from_payload(cls, payload: EngagementPayload) -> "EngagementsResponse":
        return cls(
            engagements=[EngagementItemResponse.from_domain(item) for item in payload.engagements],
            display_summaries=payload.display_summaries,
            context_summary=payload.context_summary,
        )


class EngagementContextResponse(BaseModel):
    context: str = Field(..., description="Text block appended to a chat system prompt")
