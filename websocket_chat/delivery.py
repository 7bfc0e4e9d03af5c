"""
Real-time delivery channel.

Publishes notifications to every live connection of a participant through the
channel layer group ``participant_<id>``. Delivery is best-effort: nothing is
queued for offline participants and a failed publish is logged, never raised.
The message store stays the system of record; clients re-fetch on reconnect.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.cache import cache
from django.db import close_old_connections
from django.utils import timezone

from farmlink.exceptions import DeliveryChannelError

logger = logging.getLogger(__name__)

_executor = None
_executor_lock = threading.Lock()


def participant_group(participant_id):
    return f"participant_{participant_id}"


def _get_executor():
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=settings.MESSAGE_DELIVERY_WORKERS,
                thread_name_prefix="delivery",
            )
        return _executor


# Presence registry: which channel names are connected for a participant.
# Best-effort, used only to decide whether a push reached a live subscriber.

def _presence_key(participant_id):
    return f"websocket_presence:{participant_id}"


def register_connection(participant_id, channel_name):
    key = _presence_key(participant_id)
    channels = set(cache.get(key) or [])
    channels.add(channel_name)
    cache.set(key, sorted(channels), settings.WEBSOCKET_CONNECTION_TIMEOUT)


def unregister_connection(participant_id, channel_name):
    key = _presence_key(participant_id)
    channels = set(cache.get(key) or [])
    channels.discard(channel_name)
    if channels:
        cache.set(key, sorted(channels), settings.WEBSOCKET_CONNECTION_TIMEOUT)
    else:
        cache.delete(key)


def is_online(participant_id):
    try:
        return bool(cache.get(_presence_key(participant_id)))
    except Exception as e:
        logger.warning(f"Presence lookup failed for {participant_id}: {e}")
        return False


def message_preview(message):
    return {
        'id': message.pk,
        'sender_id': message.sender_id,
        'recipient_id': message.recipient_id,
        'content': message.preview,
        'message_type': message.message_type,
        'context_id': message.context_id,
        'created_at': message.created_at.isoformat(),
    }


def new_message_event(message):
    return {
        'type': 'new_message',
        'conversation_key': message.conversation_key,
        'message_preview': message_preview(message),
    }


def conversation_read_event(conversation_key, marked, read_at):
    return {
        'type': 'conversation_read',
        'conversation_key': conversation_key,
        'marked': marked,
        'read_at': read_at.isoformat(),
    }


def publish(participant_id, event):
    """
    Push ``event`` to all live connections of ``participant_id``.

    Returns True when the channel layer accepted the event. Failures are
    logged as DeliveryChannelError and swallowed.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer configured, dropping real-time event")
        return False

    try:
        async_to_sync(channel_layer.group_send)(
            participant_group(participant_id),
            {'type': 'participant.event', 'event': event},
        )
    except Exception as e:
        error = DeliveryChannelError(f"Publish to {participant_id} failed: {e}")
        logger.warning(str(error))
        return False
    return True


def deliver_new_message(message):
    """Publish a stored message to its recipient and record the push."""
    try:
        online = is_online(message.recipient_id)
        if not publish(message.recipient_id, new_message_event(message)):
            return False
        if not online:
            logger.debug(f"Recipient {message.recipient_id} offline, message {message.pk} left for next fetch")
            return False

        from dmessages.models import Message

        Message._default_manager.filter(pk=message.pk, delivered_at__isnull=True).update(
            delivered_at=timezone.now()
        )
        return True
    except Exception as e:
        logger.warning(str(DeliveryChannelError(f"Delivery of message {message.pk} failed: {e}")))
        return False


def _run_in_worker(func, *args):
    try:
        func(*args)
    finally:
        close_old_connections()


def dispatch(func, *args):
    """Run ``func`` on the delivery worker pool, or inline when async delivery is off."""
    if not getattr(settings, 'MESSAGE_DELIVERY_ASYNC', True):
        return func(*args)
    try:
        return _get_executor().submit(_run_in_worker, func, *args)
    except RuntimeError as e:
        logger.warning(str(DeliveryChannelError(f"Delivery pool unavailable: {e}")))
        return None


def publish_new_message(message):
    """Fire-and-forget entry point used by the send pipeline after commit."""
    return dispatch(deliver_new_message, message)


def publish_conversation_read(participant_id, conversation_key, marked, read_at):
    return dispatch(publish, participant_id, conversation_read_event(conversation_key, marked, read_at))
