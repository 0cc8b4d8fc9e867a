"""
Per-kind HubSpot property schemas.

HubSpot names every engagement property differently per object type. All of
those names live here so an upstream rename touches this module only.
"""

from dataclasses import dataclass

from .models import EngagementKind


@dataclass(frozen=True, slots=True)
class EngagementSchema:
    kind: EngagementKind
    object_type: str  # HubSpot CRM object path segment
    timestamp_fields: tuple[str, ...]  # first present value wins
    body_fields: tuple[str, ...]
    default_title: str
    title_field: str | None = None
    direction_field: str | None = None
    duration_field: str | None = None
    extra_fields: tuple[str, ...] = ()

    @property
    def properties(self) -> tuple[str, ...]:
        """Every property to request when fetching one record, de-duplicated in order."""
        names: list[str] = ["hs_timestamp"]
        for name in (
            *self.timestamp_fields,
            self.title_field,
            self.direction_field,
            self.duration_field,
            *self.body_fields,
            *self.extra_fields,
        ):
            if name and name not in names:
                names.append(name)
        return tuple(names)


CALL_SCHEMA = EngagementSchema(
    kind=EngagementKind.CALL,
    object_type="calls",
    timestamp_fields=("hs_timestamp",),
    body_fields=("hs_call_body",),
    default_title="Call",
    direction_field="hs_call_direction",
    duration_field="hs_call_duration",
)

EMAIL_SCHEMA = EngagementSchema(
    kind=EngagementKind.EMAIL,
    object_type="emails",
    timestamp_fields=("hs_timestamp",),
    body_fields=("hs_email_text", "hs_email_html"),
    default_title="Email",
    title_field="hs_email_subject",
    direction_field="hs_email_direction",
)

MEETING_SCHEMA = EngagementSchema(
    kind=EngagementKind.MEETING,
    object_type="meetings",
    timestamp_fields=("hs_meeting_start_time", "hs_timestamp"),
    body_fields=("hs_meeting_body",),
    default_title="Meeting",
    title_field="hs_meeting_title",
    extra_fields=("hs_meeting_end_time",),
)

NOTE_SCHEMA = EngagementSchema(
    kind=EngagementKind.NOTE,
    object_type="notes",
    timestamp_fields=("hs_created_date", "hs_lastmodifieddate", "hs_timestamp"),
    body_fields=("hs_note_body",),
    default_title="Note",
)

# Iteration order is the fetch order, which doubles as the tie-break when ranking.
ENGAGEMENT_SCHEMAS: dict[EngagementKind, EngagementSchema] = {
    EngagementKind.CALL: CALL_SCHEMA,
    EngagementKind.EMAIL: EMAIL_SCHEMA,
    EngagementKind.MEETING: MEETING_SCHEMA,
    EngagementKind.NOTE: NOTE_SCHEMA,
}
