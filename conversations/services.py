"""
Conversation views derived from the flat message store.

Summaries are aggregated from messages on every call and read watermarks can
be rebuilt from ``Message.read_at``. The only state owned here is which
conversations a participant archived.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from django.conf import settings
from django.core.paginator import EmptyPage, Paginator
from django.db import transaction
from django.db.models import Count, F, Max, OuterRef, Q, Subquery
from django.db.models.functions import Greatest
from django.utils import timezone

from dmessages.models import Message
from dmessages.services import message_store
from farmlink.exceptions import ConversationNotFound, ValidationError
from farmlink.permissions import OBSERVE_CONVERSATION, has_capability
from users.identity import ParticipantSnapshot, get_identity_provider
from websocket_chat import delivery
from .keys import parse_key
from .models import ConversationArchive, ReadWatermark

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    conversation_key: str
    context_id: Optional[str]
    counterpart: ParticipantSnapshot
    last_message: Message
    unread_count: int
    last_activity_at: datetime
    last_read_at: Optional[datetime] = None
    archived: bool = False


@dataclass
class ConversationPage:
    results: List[ConversationSummary] = field(default_factory=list)
    next_page: Optional[int] = None
    total_count: int = 0


@dataclass
class MessagePage:
    conversation_key: str
    results: List[Message] = field(default_factory=list)
    next_page: Optional[int] = None
    total_count: int = 0


def clamp_page_size(page_size, default, maximum):
    try:
        page_size = int(page_size) if page_size not in (None, '') else default
    except (TypeError, ValueError):
        raise ValidationError("page_size must be an integer.", code='invalid_page_size')
    if page_size < 1:
        raise ValidationError("page_size must be at least 1.", code='invalid_page_size')
    return min(page_size, maximum)


def clamp_page(page):
    try:
        page = int(page) if page not in (None, '') else 1
    except (TypeError, ValueError):
        raise ValidationError("page must be an integer.", code='invalid_page')
    if page < 1:
        raise ValidationError("page must be at least 1.", code='invalid_page')
    return page


def participant_key(viewer_id, conversation_key):
    """Parse a key the viewer takes part in; anything else is ConversationNotFound."""
    try:
        key = parse_key(str(conversation_key))
    except ValidationError:
        raise ConversationNotFound()
    if not key.includes(viewer_id):
        raise ConversationNotFound()
    return key


class ConversationService:

    @staticmethod
    def participant_messages(viewer_id):
        """Every message the viewer sent or received (served by the sender/recipient indexes)."""
        return Message._default_manager.filter(Q(sender_id=viewer_id) | Q(recipient_id=viewer_id))

    @staticmethod
    def last_messages(keys):
        """Newest message per conversation key, fetched in a single query."""
        newest = (
            Message._default_manager.filter(conversation_key=OuterRef('conversation_key'))
            .order_by('-created_at', '-id')
            .values('id')[:1]
        )
        messages = (
            Message._default_manager.filter(conversation_key__in=keys)
            .annotate(newest_id=Subquery(newest))
            .filter(id=F('newest_id'))
        )
        return {message.conversation_key: message for message in messages}

    @staticmethod
    def list_conversations(viewer_id, page=1, page_size=None, archived=False) -> ConversationPage:
        """
        One summary per conversation the viewer takes part in, most recent
        activity first.

        A viewer without messages gets an empty page. A counterpart the
        identity provider cannot resolve is shown as a placeholder instead of
        hiding the conversation. Conversations the viewer archived are left
        out, unless ``archived`` is set, in which case only they are listed.
        """
        page = clamp_page(page)
        page_size = clamp_page_size(
            page_size,
            settings.CONVERSATION_PAGE_SIZE,
            settings.CONVERSATION_PAGE_SIZE_MAX,
        )

        with message_store():
            messages = ConversationService.participant_messages(viewer_id)
            archived_keys = ConversationArchive._default_manager.filter(
                participant_id=viewer_id,
            ).values('conversation_key')
            if archived:
                messages = messages.filter(conversation_key__in=archived_keys)
            else:
                messages = messages.exclude(conversation_key__in=archived_keys)

            grouped = (
                messages
                .values('conversation_key')
                .annotate(
                    last_activity_at=Max('created_at'),
                    unread_count=Count('id', filter=Q(recipient_id=viewer_id, read_at__isnull=True)),
                )
                .order_by('-last_activity_at', 'conversation_key')
            )

            paginator = Paginator(grouped, page_size)
            try:
                page_obj = paginator.page(page)
            except EmptyPage:
                return ConversationPage(results=[], next_page=None, total_count=paginator.count)

            rows = list(page_obj.object_list)
            keys = [row['conversation_key'] for row in rows]

            last_messages = ConversationService.last_messages(keys)

            watermarks = dict(
                ReadWatermark._default_manager.filter(
                    participant_id=viewer_id,
                    conversation_key__in=keys,
                ).values_list('conversation_key', 'last_read_at')
            )

        counterpart_ids = [last_messages[key].counterpart_of(viewer_id) for key in keys]
        try:
            counterparts = get_identity_provider().resolve_many(counterpart_ids)
        except Exception as e:
            logger.warning(f"Counterpart lookup failed for {viewer_id}, using placeholders: {e}")
            counterparts = {}

        results = []
        for row in rows:
            key = row['conversation_key']
            last_message = last_messages[key]
            counterpart_id = last_message.counterpart_of(viewer_id)
            results.append(ConversationSummary(
                conversation_key=key,
                context_id=last_message.context_id,
                counterpart=counterparts.get(counterpart_id) or ParticipantSnapshot.placeholder(counterpart_id),
                last_message=last_message,
                unread_count=row['unread_count'],
                last_activity_at=row['last_activity_at'],
                last_read_at=watermarks.get(key),
                archived=archived,
            ))

        return ConversationPage(
            results=results,
            next_page=page_obj.next_page_number() if page_obj.has_next() else None,
            total_count=paginator.count,
        )

    @staticmethod
    def unread_total(viewer_id) -> int:
        """Unread messages addressed to the viewer across all conversations."""
        with message_store():
            return Message._default_manager.filter(recipient_id=viewer_id, read_at__isnull=True).count()

    @staticmethod
    def authorize(viewer_id, conversation_key, role=None):
        """
        Parse the key and check the viewer may read it.

        Participants always may; admins may observe any conversation.
        Everybody else gets ConversationNotFound so keys cannot be probed.
        """
        try:
            key = parse_key(conversation_key)
        except ValidationError:
            raise ConversationNotFound()
        if not key.includes(viewer_id) and not has_capability(role, OBSERVE_CONVERSATION):
            raise ConversationNotFound()
        return key

    @staticmethod
    def list_messages(viewer_id, conversation_key, since=None, page=1, page_size=None, role=None) -> MessagePage:
        """
        Messages of one conversation, oldest first.

        Page 1 holds the most recent ``page_size`` messages; higher pages go
        back in time. ``since`` limits the result to messages created after
        that instant. Listing never marks messages read.
        """
        ConversationService.authorize(viewer_id, conversation_key, role)
        page = clamp_page(page)
        page_size = clamp_page_size(page_size, settings.MESSAGE_PAGE_SIZE, settings.MESSAGE_PAGE_SIZE_MAX)

        with message_store():
            messages = Message._default_manager.filter(conversation_key=conversation_key)
            if since is not None:
                messages = messages.filter(created_at__gt=since)
            messages = messages.order_by('-created_at', '-id')

            paginator = Paginator(messages, page_size)
            try:
                page_obj = paginator.page(page)
            except EmptyPage:
                return MessagePage(conversation_key=conversation_key, total_count=paginator.count)

            results = list(reversed(list(page_obj.object_list)))

        return MessagePage(
            conversation_key=conversation_key,
            results=results,
            next_page=page_obj.next_page_number() if page_obj.has_next() else None,
            total_count=paginator.count,
        )

    @staticmethod
    def search_messages(viewer_id, query, limit=None) -> List[Message]:
        """
        Messages the viewer sent or received whose text contains ``query``,
        newest first. Matching is case-insensitive.
        """
        query = (query or '').strip()
        if len(query) < settings.MESSAGE_SEARCH_MIN_LENGTH:
            raise ValidationError(
                f"Search query must be at least {settings.MESSAGE_SEARCH_MIN_LENGTH} characters.",
                code='invalid_query',
            )
        limit = clamp_page_size(limit, settings.MESSAGE_SEARCH_LIMIT, settings.MESSAGE_SEARCH_LIMIT_MAX)

        with message_store():
            return list(
                ConversationService.participant_messages(viewer_id)
                .filter(content__icontains=query)
                .order_by('-created_at', '-id')[:limit]
            )

    @staticmethod
    def archive(viewer_id, conversation_key):
        """
        Hide a conversation from the viewer's default list.

        Only the viewer's own list changes. Archiving twice keeps the first
        timestamp. Returns the archive row.
        """
        key = participant_key(viewer_id, conversation_key)
        with message_store():
            archive, created = ConversationArchive._default_manager.get_or_create(
                participant_id=viewer_id,
                conversation_key=str(key),
            )
        if created:
            logger.info(f"{viewer_id} archived {key}")
        return archive

    @staticmethod
    def unarchive(viewer_id, conversation_key) -> bool:
        """Bring an archived conversation back. Returns False if it was not archived."""
        key = participant_key(viewer_id, conversation_key)
        with message_store():
            deleted, _ = ConversationArchive._default_manager.filter(
                participant_id=viewer_id,
                conversation_key=str(key),
            ).delete()
        return bool(deleted)


class ReadStateService:

    @staticmethod
    def mark_read(viewer_id, conversation_key) -> int:
        """
        Mark every message addressed to the viewer in this conversation as read.

        Only messages created up to the moment of the call are touched, so a
        message arriving concurrently stays unread. The update is conditional
        on ``read_at IS NULL``, which makes repeated and concurrent calls safe:
        each message is counted by exactly one call. Returns the number of
        messages newly marked.
        """
        conversation_key = str(participant_key(viewer_id, conversation_key))

        call_time = timezone.now()
        with message_store():
            with transaction.atomic():
                unread = Message._default_manager.filter(
                    conversation_key=conversation_key,
                    recipient_id=viewer_id,
                    read_at__isnull=True,
                    created_at__lte=call_time,
                )
                newest = unread.aggregate(newest=Max('created_at'))['newest']
                marked = unread.update(read_at=call_time)

                if marked and newest is not None:
                    ReadStateService._advance_watermark(viewer_id, conversation_key, newest)

        if marked:
            logger.info(f"{viewer_id} read {marked} message(s) in {conversation_key}")
            delivery.publish_conversation_read(viewer_id, conversation_key, marked, call_time)
        return marked

    @staticmethod
    def _advance_watermark(participant_id, conversation_key, read_up_to):
        watermark, created = ReadWatermark._default_manager.get_or_create(
            participant_id=participant_id,
            conversation_key=conversation_key,
            defaults={'last_read_at': read_up_to},
        )
        if not created:
            ReadWatermark._default_manager.filter(pk=watermark.pk).update(
                last_read_at=Greatest('last_read_at', read_up_to),
            )

    @staticmethod
    def rebuild_watermarks(participant_id=None):
        """
        Recompute watermarks from ``Message.read_at``.

        Returns the number of watermark rows written.
        """
        read = Message._default_manager.filter(read_at__isnull=False)
        if participant_id:
            read = read.filter(recipient_id=participant_id)

        rows = (
            read.values('recipient_id', 'conversation_key')
            .annotate(last_read_at=Max('created_at'))
            .order_by()
        )

        written = 0
        with transaction.atomic():
            for row in rows:
                ReadWatermark._default_manager.update_or_create(
                    participant_id=row['recipient_id'],
                    conversation_key=row['conversation_key'],
                    defaults={'last_read_at': row['last_read_at']},
                )
                written += 1
        return written
