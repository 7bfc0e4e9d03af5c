import logging

import jwt
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework.exceptions import AuthenticationFailed

from .jwt_utils import validate_jwt_token

logger = logging.getLogger(__name__)


class AuthenticatedParticipant:
    """The caller of a request, as far as the messaging core cares."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, participant_id, role, claims=None):
        self.participant_id = participant_id
        self.role = role
        self.claims = claims or {}

    @property
    def pk(self):
        return self.participant_id

    def __str__(self):
        return f"{self.participant_id} ({self.role})"


def participant_from_claims(payload):
    """
    Build an AuthenticatedParticipant from verified token claims.

    The role claim wins; without it the role is looked up through the identity
    provider, and a participant the provider no longer knows gets role "unknown".
    """
    from users.identity import get_identity_provider

    participant_id = payload.get('sub')
    if not participant_id:
        raise AuthenticationFailed('Token has no subject')

    role = payload.get('role')
    if not role:
        role = get_identity_provider().resolve_or_placeholder(participant_id).role

    return AuthenticatedParticipant(participant_id, role, payload)


class JWTAuthentication(BaseAuthentication):
    keyword = 'Bearer'

    def authenticate(self, request):
        """
        Authenticate a request using the identity service JWT in the Authorization header.

        Returns None when no Bearer header is present so that unauthenticated
        endpoints keep working; raises AuthenticationFailed on a bad token.
        On success ``request.user_id`` carries the participant id.
        """
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            raise AuthenticationFailed("Wrong token format. Expected 'Bearer token'")

        try:
            payload = validate_jwt_token(auth[1].decode())
        except (jwt.InvalidTokenError, UnicodeError) as e:
            logger.info(f"Rejected token: {e}")
            raise AuthenticationFailed(str(e))

        participant = participant_from_claims(payload)
        request.user_id = participant.participant_id
        return (participant, payload)

    def authenticate_header(self, request):
        return self.keyword
