"""Priority ordering for the processing queue.

Urgent emails come before normal ones; within a tier the earliest
``received_at`` goes first. Python's sort is stable, so emails with
identical timestamps keep the order they were supplied in.
"""

from collections.abc import Iterable

from .models import Email, Priority

_TIER_RANK = {
    Priority.URGENT: 0,
    Priority.NORMAL: 1,
}


def _sort_key(email: Email):
    return _TIER_RANK[email.priority], email.received_at


def order_items(items: Iterable[Email]) -> list[Email]:
    """Return a new list of *items* in processing order."""
    return sorted(items, key=_sort_key)


def ordered_ids(items: Iterable[Email]) -> list[str]:
    return [email.id for email in order_items(items)]


def split_tiers(items: Iterable[Email]) -> tuple[list[Email], list[Email]]:
    """Return (urgent, normal), each already in processing order."""
    ordered = order_items(items)
    urgent = [e for e in ordered if e.priority is Priority.URGENT]
    normal = [e for e in ordered if e.priority is Priority.NORMAL]
    return urgent, normal
