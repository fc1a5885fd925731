"""Dashboard KPI computation over the email set. Pure stdlib, no pandas."""

import logging
from collections import Counter
from datetime import datetime
from typing import Any

from .models import Email, EmailStatus, Priority, Sentiment

logger = logging.getLogger(__name__)

PRIORITY_FILTERS = frozenset(["all"] + [p.value for p in Priority])
SENTIMENT_FILTERS = frozenset(["all"] + [s.value for s in Sentiment])

_PREVIEW_CHARS = 140


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────

def format_received_human(dt: datetime | None) -> str:
    """'19 Aug 00:58' style label used on cards and queue rows."""
    if dt is None:
        return ""
    return dt.strftime("%d %b %H:%M")


def _preview(body: str) -> str:
    text = " ".join((body or "").split())
    if len(text) <= _PREVIEW_CHARS:
        return text
    return text[:_PREVIEW_CHARS].rstrip() + "…"


def _normalise_filter(value: str | None, allowed: frozenset, name: str) -> str:
    s = (value or "all").strip().lower()
    if s not in allowed:
        raise ValueError(f"Invalid {name} filter: {value!r} (expected one of {sorted(allowed)})")
    return s


# ─────────────────────────────────────────────
# Filtering
# ─────────────────────────────────────────────

def filter_emails(emails: list[Email], search: str | None = None,
                  priority: str | None = "all", sentiment: str | None = "all") -> list[Email]:
    """Search on subject/sender (case-insensitive) plus priority and sentiment filters.

    Raises ValueError for an unknown priority or sentiment value.
    """
    priority = _normalise_filter(priority, PRIORITY_FILTERS, "priority")
    sentiment = _normalise_filter(sentiment, SENTIMENT_FILTERS, "sentiment")
    term = (search or "").strip().lower()

    out = []
    for email in emails:
        if term and term not in email.subject.lower() and term not in email.sender.lower():
            continue
        if priority != "all" and email.priority.value != priority:
            continue
        if sentiment != "all" and email.sentiment.value != sentiment:
            continue
        out.append(email)
    return out


# ─────────────────────────────────────────────
# Summary
# ─────────────────────────────────────────────

def compute_summary(emails: list[Email], filtered: list[Email] | None = None) -> dict[str, int]:
    """Headline counts. Totals use every email; urgent uses the filtered view."""
    if filtered is None:
        filtered = emails
    status_counts = Counter(e.status for e in emails)
    return {
        "total": len(emails),
        "urgent": sum(1 for e in filtered if e.priority is Priority.URGENT),
        "resolved": status_counts.get(EmailStatus.RESOLVED, 0),
        "pending": status_counts.get(EmailStatus.PENDING, 0),
        "processing": status_counts.get(EmailStatus.PROCESSING, 0),
    }


def email_card(email: Email) -> dict[str, Any]:
    return {
        "id": email.id,
        "sender": email.sender,
        "subject": email.subject,
        "preview": _preview(email.body),
        "received_at": email.received_at.isoformat(),
        "received_display": format_received_human(email.received_at),
        "priority": email.priority.value,
        "sentiment": email.sentiment.value,
        "status": email.status.value,
        "category": email.category,
    }


def compute_dashboard(emails: list[Email], search: str | None = None,
                      priority: str | None = "all", sentiment: str | None = "all") -> dict[str, Any]:
    """Single payload for the dashboard landing view."""
    filtered = filter_emails(emails, search=search, priority=priority, sentiment=sentiment)
    # Newest first, like an inbox
    filtered_sorted = sorted(filtered, key=lambda e: e.received_at, reverse=True)
    return {
        "summary": compute_summary(emails, filtered),
        "filters": {
            "search": search or "",
            "priority": (priority or "all").lower(),
            "sentiment": (sentiment or "all").lower(),
        },
        "emails": [email_card(e) for e in filtered_sorted],
        "count": len(filtered_sorted),
    }


# ─────────────────────────────────────────────
# Distributions
# ─────────────────────────────────────────────

def compute_distribution(emails: list[Email], attr: str) -> list[dict[str, Any]]:
    """Share of emails per value of *attr* ('sentiment' or 'category'), largest first."""
    values = []
    for email in emails:
        value = getattr(email, attr)
        if isinstance(value, (Sentiment, Priority, EmailStatus)):
            value = value.value
        values.append(value or "Uncategorised")
    counts = Counter(values)
    total = sum(counts.values())
    out = []
    for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
        out.append({
            "name": name,
            "count": count,
            "percent": round(count / total * 100, 1) if total else 0.0,
        })
    return out
