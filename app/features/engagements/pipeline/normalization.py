"""
Timestamp and engagement normalization.

Turns a raw HubSpot property bag into an EngagementItem. Defaulting rules
(title per kind, body fallback, which fields only calls/emails carry) live
here and nowhere else.
"""

import re
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from app.features.engagements.domain.models import BODY_MAX_CHARS, EngagementItem, EngagementKind
from app.features.engagements.domain.schemas import ENGAGEMENT_SCHEMAS, EngagementSchema
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_EPOCH_MS_RE = re.compile(r"^\d+(\.\d+)?$")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(raw: Any, now: Callable[[], datetime] = _utcnow) -> datetime:
    """
    Parse a HubSpot timestamp into an aware UTC datetime.

    Tries epoch milliseconds first (HubSpot often string-encodes them), then
    ISO-8601 text. Anything unparseable becomes "now" so a broken record ranks
    as recent/unknown instead of sinking to the oldest slot.
    """
    if raw is None or raw == "":
        logger.warning("Timestamp missing, using current time")
        return now()

    if isinstance(raw, bool):
        logger.warning("Failed to parse timestamp, using current time", raw_timestamp=raw)
        return now()

    if isinstance(raw, (int, float)):
        parsed = _from_epoch_ms(raw)
        if parsed is not None:
            return parsed
    elif isinstance(raw, str):
        text = raw.strip()
        if _EPOCH_MS_RE.match(text):
            parsed = _from_epoch_ms(float(text) if "." in text else int(text))
            if parsed is not None:
                return parsed
        else:
            parsed = _from_iso(text)
            if parsed is not None:
                return parsed

    logger.warning("Failed to parse timestamp, using current time", raw_timestamp=str(raw)[:64])
    return now()


def _from_epoch_ms(value: int | float) -> datetime | None:
    if value <= 0:
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _from_iso(text: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    parsed = parsed.astimezone(UTC)
    if parsed.timestamp() <= 0:
        return None
    return parsed


def _first_present(props: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = props.get(name)
        if value is not None and value != "":
            return value
    return None


def _optional_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def normalize_engagement(
    kind: EngagementKind,
    record_id: str,
    props: Mapping[str, Any],
    contact_name: str | None = None,
    now: Callable[[], datetime] = _utcnow,
) -> EngagementItem:
    """Map one record's raw properties to a canonical EngagementItem."""
    schema: EngagementSchema = ENGAGEMENT_SCHEMAS[kind]

    raw_timestamp = _first_present(props, schema.timestamp_fields)
    timestamp = parse_timestamp(raw_timestamp, now=now)

    body = _optional_text(_first_present(props, schema.body_fields))
    if body is not None:
        body = body[:BODY_MAX_CHARS]

    direction = _optional_text(props.get(schema.direction_field)) if schema.direction_field else None
    duration = _optional_text(props.get(schema.duration_field)) if schema.duration_field else None

    if kind is EngagementKind.CALL:
        title = f"Call ({duration}s)" if duration else schema.default_title
    elif schema.title_field:
        title = _optional_text(props.get(schema.title_field)) or schema.default_title
    else:
        title = schema.default_title

    logger.debug(
        "Engagement normalized",
        engagement_kind=kind.value,
        record_id=record_id,
        raw_timestamp=raw_timestamp,
        timestamp=timestamp.isoformat(),
    )

    return EngagementItem(
        id=str(record_id),
        kind=kind,
        timestamp=timestamp,
        title=title,
        body=body,
        direction=direction,
        duration=duration,
        contact_name=contact_name,
    )
