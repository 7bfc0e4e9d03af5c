import html
import logging
import mimetypes
from contextlib import contextmanager
from typing import NamedTuple, Optional

import bleach
from django.conf import settings
from django.db import IntegrityError, InterfaceError, OperationalError, transaction

from conversations.keys import resolve_key
from farmlink.exceptions import (
    NotFoundError,
    ParticipantNotFound,
    RecipientUnknown,
    TransientStoreError,
    ValidationError,
)
from users.identity import get_identity_provider
from websocket_chat import delivery
from .models import Message

logger = logging.getLogger(__name__)

MAX_TOKEN_LENGTH = 100
ATTACHMENT_TYPES = {"image", "video", "audio", "file"}


@contextmanager
def message_store():
    """Turn connection loss and statement timeouts into a retryable TransientStoreError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.warning(f"Message store unavailable: {e}")
        raise TransientStoreError() from e


class SendResult(NamedTuple):
    message: Message
    created: bool


def sanitize_content(content):
    """
    Strip all markup from message text and return it as plain text.

    bleach escapes the characters it leaves behind, so the result is
    unescaped again: ``5 < 7 & fair`` is stored exactly as typed.
    """
    if not content:
        return ""
    return html.unescape(bleach.clean(content, tags=[], attributes={}, strip=True))


def classify_attachment(media_ref, attachment_type=None):
    """Pick the message_type for a message carrying ``media_ref``."""
    if not media_ref:
        return "text"
    if attachment_type:
        if attachment_type not in ATTACHMENT_TYPES:
            raise ValidationError(
                f"attachment_type must be one of {', '.join(sorted(ATTACHMENT_TYPES))}.",
                code='invalid_attachment_type',
            )
        return attachment_type

    content_type, _ = mimetypes.guess_type(media_ref)
    content_type = (content_type or '').lower()
    if "image" in content_type:
        return "image"
    elif "video" in content_type:
        return "video"
    elif "audio" in content_type:
        return "audio"
    return "file"


class MessageService:
    """
    Send pipeline: validate, persist, then hand the message to the delivery
    channel once the transaction has committed.
    """

    @staticmethod
    def send(
        sender_id: str,
        recipient_id: str,
        content: Optional[str] = "",
        media_ref: Optional[str] = None,
        context_id: Optional[str] = None,
        idempotency_token: Optional[str] = None,
        attachment_type: Optional[str] = None,
    ) -> SendResult:
        """
        Store a new message and schedule its real-time notification.

        Returns a SendResult; ``created`` is False when ``idempotency_token``
        matched a message this sender already stored, in which case that
        message is returned untouched and nothing is published again.

        Raises:
            ValidationError: bad input (including sending to yourself).
            NotFoundError / RecipientUnknown: sender or recipient unknown.
            TransientStoreError: the store timed out or is unreachable, or
                (IdentityUnavailable) the identity service could not answer.
        """
        if sender_id == recipient_id:
            raise ValidationError("You cannot send a message to yourself.", code='self_message')

        conversation_key = resolve_key(sender_id, recipient_id, context_id)

        content = sanitize_content(content)
        if not content.strip():
            content = ""
        media_ref = media_ref or None
        if not content and not media_ref:
            raise ValidationError(
                "Message must have content or an attachment.",
                code='empty_body',
            )
        if len(content) > settings.MESSAGE_MAX_LENGTH:
            raise ValidationError(
                f"Message content cannot exceed {settings.MESSAGE_MAX_LENGTH} characters.",
                code='content_too_long',
            )

        idempotency_token = idempotency_token or None
        if idempotency_token is not None and len(idempotency_token) > MAX_TOKEN_LENGTH:
            raise ValidationError(
                f"Idempotency token cannot exceed {MAX_TOKEN_LENGTH} characters.",
                code='invalid_token',
            )

        message_type = classify_attachment(media_ref, attachment_type)

        identity = get_identity_provider()
        try:
            identity.resolve_participant(sender_id)
        except ParticipantNotFound:
            raise NotFoundError(f"Sender {sender_id} not found.", code='sender_unknown')
        try:
            identity.resolve_participant(recipient_id)
        except ParticipantNotFound:
            raise RecipientUnknown(f"Recipient {recipient_id} does not exist.")

        with message_store():
            if idempotency_token:
                existing = MessageService._find_by_token(sender_id, idempotency_token)
                if existing is not None:
                    logger.info(f"Replayed send of message {existing.pk} from {sender_id}")
                    return SendResult(existing, False)

            try:
                with transaction.atomic():
                    message = Message._default_manager.create(
                        sender_id=sender_id,
                        recipient_id=recipient_id,
                        content=content,
                        media_ref=media_ref,
                        message_type=message_type,
                        context_id=context_id or None,
                        conversation_key=conversation_key,
                        idempotency_token=idempotency_token,
                    )
                    transaction.on_commit(lambda: delivery.publish_new_message(message))
            except IntegrityError:
                # A concurrent retry with the same token won the insert.
                if idempotency_token:
                    existing = MessageService._find_by_token(sender_id, idempotency_token)
                    if existing is not None:
                        return SendResult(existing, False)
                raise

        logger.info(f"Stored message {message.pk} from {sender_id} in {conversation_key}")
        return SendResult(message, True)

    @staticmethod
    def _find_by_token(sender_id, idempotency_token):
        return Message._default_manager.filter(
            sender_id=sender_id,
            idempotency_token=idempotency_token,
        ).first()
