"""
Optimistic send bookkeeping.

A client shows a message as soon as the user hits send and swaps it for the
stored message once the server confirms it. Entries whose send failed stay
in the timeline, flagged, so the user can retry.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.utils.dateparse import parse_datetime

from .services import sanitize_content

PENDING = "pending"
FAILED = "failed"
CONFIRMED = "confirmed"


@dataclass(frozen=True)
class PendingMessage:
    client_id: str
    recipient_id: str
    content: str
    sent_at: datetime
    sender_id: Optional[str] = None
    idempotency_token: Optional[str] = None
    status: str = PENDING
    message_id: Optional[int] = None
    error: Optional[str] = None


def _field(message, name):
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def _created_at(message):
    created_at = _field(message, 'created_at')
    if isinstance(created_at, str):
        created_at = parse_datetime(created_at)
    return created_at


def matches(entry, confirmed_message, tolerance):
    """True when ``confirmed_message`` is the server copy of ``entry``."""
    if entry.status == CONFIRMED:
        return False

    token = _field(confirmed_message, 'idempotency_token')
    if entry.idempotency_token:
        return entry.idempotency_token == token

    if entry.sender_id and entry.sender_id != _field(confirmed_message, 'sender_id'):
        return False
    if entry.recipient_id != _field(confirmed_message, 'recipient_id'):
        return False
    # The server stores sanitized text; compare like with like.
    if sanitize_content(entry.content) != sanitize_content(_field(confirmed_message, 'content')):
        return False

    created_at = _created_at(confirmed_message)
    if created_at is None:
        return False
    return abs(created_at - entry.sent_at) <= tolerance


def reconcile(pending: List[PendingMessage], confirmed_message, tolerance=None) -> List[PendingMessage]:
    """
    Replace the entry matching ``confirmed_message`` with its confirmed form.

    Entries carrying an idempotency token match on the token only. Entries
    without one fall back to sender, recipient, body and a send time within
    ``tolerance`` of the stored timestamp. Only the first match is replaced;
    the list is returned unchanged when nothing matches.
    """
    if tolerance is None:
        tolerance = timedelta(seconds=settings.RECONCILE_TOLERANCE_SECONDS)

    result = list(pending)
    for index, entry in enumerate(result):
        if matches(entry, confirmed_message, tolerance):
            result[index] = replace(
                entry,
                status=CONFIRMED,
                message_id=_field(confirmed_message, 'id'),
                content=_field(confirmed_message, 'content') or '',
                error=None,
            )
            break
    return result


def mark_failed(pending: List[PendingMessage], client_id, error=None) -> List[PendingMessage]:
    return [
        replace(entry, status=FAILED, error=error) if entry.client_id == client_id and entry.status != CONFIRMED else entry
        for entry in pending
    ]
