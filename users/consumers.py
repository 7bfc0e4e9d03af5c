# users/consumers.py
import json
import logging

from event_bus.consumer import BaseConsumer
from event_bus.registry import register
from .identity import get_identity_provider
from .models import Participant

logger = logging.getLogger(__name__)

IDENTITY_EXCHANGE = "identity.exchange"


def decode_event(body):
    """Return the payload of an identity event, or None when the body is not usable JSON."""
    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        logger.warning(f"[ParticipantEventConsumer] Failed to decode message: {body}")
        return None
    payload = event.get("payload") if isinstance(event, dict) else None
    if not payload or not payload.get("participant_id"):
        logger.warning(f"[ParticipantEventConsumer] Event without participant_id: {body}")
        return None
    return payload


def upsert_participant(payload):
    participant, created = Participant._default_manager.update_or_create(
        participant_id=str(payload["participant_id"]),
        defaults={
            "display_name": payload.get("full_name") or payload.get("display_name") or "Unknown",
            "role": payload.get("role") or "farmer",
            "avatar_url": payload.get("avatar_url"),
            "email": payload.get("email"),
            "is_active": True,
        },
    )
    get_identity_provider().invalidate(participant.participant_id)
    return participant, created


@register
class ParticipantCreatedEventConsumer(BaseConsumer):
    queue_name = "io.farmlink.messaging.identity.participant.created"
    exchange_name = IDENTITY_EXCHANGE
    exchange_type = "direct"
    routing_key = "identity.participant.created"

    def handle_message(self, body: str, routing_key=None):
        payload = decode_event(body)
        if payload is None:
            return
        participant, _ = upsert_participant(payload)
        logger.info(f"[ParticipantCreatedEventConsumer] Created participant {participant.participant_id}")


@register
class ParticipantUpdatedEventConsumer(BaseConsumer):
    queue_name = "io.farmlink.messaging.identity.participant.updated"
    exchange_name = IDENTITY_EXCHANGE
    exchange_type = "direct"
    routing_key = "identity.participant.updated"

    def handle_message(self, body: str, routing_key=None):
        payload = decode_event(body)
        if payload is None:
            return
        participant, _ = upsert_participant(payload)
        logger.info(f"[ParticipantUpdatedEventConsumer] Updated participant {participant.participant_id}")


@register
class ParticipantDeletedEventConsumer(BaseConsumer):
    queue_name = "io.farmlink.messaging.identity.participant.deleted"
    exchange_name = IDENTITY_EXCHANGE
    exchange_type = "direct"
    routing_key = "identity.participant.deleted"

    def handle_message(self, body: str, routing_key=None):
        """
        Deactivate rather than delete, so message history keeps rendering
        with a placeholder counterpart.
        """
        payload = decode_event(body)
        if payload is None:
            return
        participant_id = str(payload["participant_id"])
        updated = Participant._default_manager.filter(participant_id=participant_id).update(is_active=False)
        if not updated:
            # Never mirrored; record the tombstone so remote lookups are not attempted.
            Participant._default_manager.create(
                participant_id=participant_id,
                display_name=payload.get("full_name") or "Unknown",
                role=payload.get("role") or "farmer",
                is_active=False,
            )
        get_identity_provider().invalidate(participant_id)
        logger.info(f"[ParticipantDeletedEventConsumer] Deactivated participant {participant_id}")
