"""
Typed failures for the messaging core.

Every failure surfaced to a client carries an ``error`` message, a machine
readable ``code`` and a ``retryable`` flag so the presentation layer can tell
"your message was not saved, retry" apart from "fix your input".
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, AuthenticationFailed
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MessagingError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Messaging error.'
    default_code = 'messaging_error'
    retryable = False

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail, code=code)
        self.code = code or self.default_code


class ValidationError(MessagingError):
    """Bad or missing input. Never retried automatically."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'invalid'


class InvalidParticipants(ValidationError):
    default_detail = 'A conversation needs two distinct, non-empty participant ids.'
    default_code = 'invalid_participants'


class NotFoundError(MessagingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class ParticipantNotFound(NotFoundError):
    default_detail = 'Participant not found.'
    default_code = 'participant_not_found'


class RecipientUnknown(NotFoundError):
    default_detail = 'Recipient does not exist.'
    default_code = 'recipient_unknown'


class ConversationNotFound(NotFoundError):
    default_detail = 'Conversation not found.'
    default_code = 'conversation_not_found'


class TransientStoreError(MessagingError):
    """The message store timed out or dropped the connection. Safe to retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Message store unavailable, retry later.'
    default_code = 'store_unavailable'
    retryable = True


class IdentityUnavailable(TransientStoreError):
    """The identity service could not answer. Says nothing about whether the participant exists."""
    default_detail = 'Identity service unavailable, retry later.'
    default_code = 'identity_unavailable'


class CapabilityDenied(MessagingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to perform this action.'
    default_code = 'capability_denied'


class DeliveryChannelError(Exception):
    """A real-time publish failed. Logged only, never surfaced."""


def error_payload(exc):
    """Render a messaging error the way both HTTP and WebSocket surfaces report it."""
    return {
        'error': str(exc.detail) if hasattr(exc, 'detail') else str(exc),
        'code': getattr(exc, 'code', 'error'),
        'retryable': getattr(exc, 'retryable', False),
    }


def messaging_exception_handler(exc, context):
    """DRF exception handler that keeps the ``{"error": ...}`` response shape."""
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, MessagingError):
        response.data = error_payload(exc)
    elif isinstance(exc, (NotAuthenticated, AuthenticationFailed)):
        response.data = {'error': str(exc.detail), 'code': 'not_authenticated', 'retryable': False}
    elif isinstance(response.data, dict) and 'detail' in response.data:
        response.data = {
            'error': str(response.data['detail']),
            'code': getattr(response.data['detail'], 'code', 'error'),
            'retryable': False,
        }
    else:
        response.data = {'error': 'Invalid input.', 'code': 'invalid', 'retryable': False, 'fields': response.data}

    if response.status_code >= 500:
        logger.warning(f"Request failed with {response.status_code}: {response.data['error']}")
    return response
