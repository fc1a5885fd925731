"""Email (work item) model and parsing from the JSON item file."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Priority(str, Enum):
    URGENT = "urgent"
    NORMAL = "normal"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class EmailStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    PROCESSING = "processing"


class ItemLoadError(ValueError):
    """Raised when the item file holds a record that cannot be scheduled."""


@dataclass(frozen=True)
class ExtractedInfo:
    contact_details: str | None = None
    requirements: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class Email:
    """A support email. Only id, priority and received_at matter to the queue."""

    id: str
    priority: Priority
    received_at: datetime
    sender: str = ""
    subject: str = ""
    body: str = ""
    sentiment: Sentiment = Sentiment.NEUTRAL
    status: EmailStatus = EmailStatus.PENDING
    category: str = ""
    extracted_info: ExtractedInfo = field(default_factory=ExtractedInfo)
    ai_response: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "subject": self.subject,
            "body": self.body,
            "received_at": self.received_at.isoformat(),
            "priority": self.priority.value,
            "sentiment": self.sentiment.value,
            "status": self.status.value,
            "category": self.category,
            "extracted_info": {
                "contact_details": self.extracted_info.contact_details,
                "requirements": list(self.extracted_info.requirements),
                "keywords": list(self.extracted_info.keywords),
            },
            "ai_response": self.ai_response,
        }


def _pick(raw: dict, *keys, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _parse_enum(enum_cls, value, *, field_name: str, item_id: str, default=None):
    if value is None and default is not None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ItemLoadError(f"Email {item_id}: invalid {field_name} {value!r}") from None


def _parse_received_at(value, item_id: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif not isinstance(value, str) or not value.strip():
        raise ItemLoadError(f"Email {item_id}: missing receivedAt")
    else:
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            raise ItemLoadError(f"Email {item_id}: unparseable receivedAt {value!r}") from None
    # Aware timestamps become naive UTC so they compare with naive ones.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_email(raw: dict) -> Email:
    """Build an Email from one JSON record (camelCase or snake_case keys)."""
    if not isinstance(raw, dict):
        raise ItemLoadError(f"Email record must be an object, got {type(raw).__name__}")
    item_id = _pick(raw, "id")
    if item_id is None or not str(item_id).strip():
        raise ItemLoadError("Email record is missing an id")
    item_id = str(item_id).strip()

    info_raw = _pick(raw, "extractedInfo", "extracted_info", default={}) or {}
    info = ExtractedInfo(
        contact_details=_pick(info_raw, "contactDetails", "contact_details"),
        requirements=tuple(_pick(info_raw, "requirements", default=[])),
        keywords=tuple(_pick(info_raw, "keywords", default=[])),
    )

    return Email(
        id=item_id,
        priority=_parse_enum(Priority, _pick(raw, "priority"), field_name="priority", item_id=item_id),
        received_at=_parse_received_at(_pick(raw, "receivedAt", "received_at"), item_id),
        sender=_pick(raw, "sender", default=""),
        subject=_pick(raw, "subject", default=""),
        body=_pick(raw, "body", default=""),
        sentiment=_parse_enum(Sentiment, _pick(raw, "sentiment"), field_name="sentiment",
                              item_id=item_id, default=Sentiment.NEUTRAL),
        status=_parse_enum(EmailStatus, _pick(raw, "status"), field_name="status",
                           item_id=item_id, default=EmailStatus.PENDING),
        category=_pick(raw, "category", default=""),
        extracted_info=info,
        ai_response=_pick(raw, "aiResponse", "ai_response"),
    )


def parse_emails(records) -> list[Email]:
    """Parse a list of records. Duplicate ids are rejected."""
    if not isinstance(records, list):
        raise ItemLoadError("Email file must contain a JSON list")
    emails: list[Email] = []
    seen: set[str] = set()
    for raw in records:
        email = parse_email(raw)
        if email.id in seen:
            raise ItemLoadError(f"Duplicate email id: {email.id}")
        seen.add(email.id)
        emails.append(email)
    return emails
