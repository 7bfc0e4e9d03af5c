"""
JWT utilities for the FarmLink messaging service.

Tokens are issued by the identity service; this module validates them and can
mint equivalent tokens for tests and local tooling.
"""

import jwt
import time
from django.conf import settings


class JWTManager:
    """
    JWT Manager for token generation and validation.
    """

    def __init__(self):
        # Don't access settings immediately
        self._secret = None
        self._algorithm = None

    def _get_secret(self):
        """Get the signing secret, with lazy loading."""
        if self._secret is None:
            self._secret = getattr(settings, 'JWT_SECRET', 'farmlink-local-jwt-secret-change-me-in-production')
        return self._secret

    def _get_algorithm(self):
        """Get the JWT algorithm, with lazy loading."""
        if self._algorithm is None:
            self._algorithm = getattr(settings, 'JWT_ALGORITHM', 'HS256')
        return self._algorithm

    def generate_token(self, participant_id, role=None, expires_in_hours=24):
        """
        Generate a JWT token the way the identity service issues them.

        Args:
            participant_id (str): The participant ID to include as the subject
            role (str): Optional role claim (farmer, adopter, expert, admin)
            expires_in_hours (int): Token expiration time in hours

        Returns:
            str: JWT token string
        """
        now = int(time.time())
        payload = {
            'sub': participant_id,
            'iat': now,
            'exp': now + (expires_in_hours * 3600),
            'aud': settings.JWT_AUDIENCE,
            'iss': settings.JWT_ISSUER,
        }
        if role:
            payload['role'] = role

        return jwt.encode(payload, self._get_secret(), algorithm=self._get_algorithm())

    def validate_token(self, token):
        """
        Validate a JWT token and extract the payload.

        Raises:
            jwt.InvalidTokenError: If token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                self._get_secret(),
                algorithms=[self._get_algorithm()],
                audience=settings.JWT_AUDIENCE,
                issuer=settings.JWT_ISSUER,
            )
        except jwt.ExpiredSignatureError:
            raise jwt.InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")

    def extract_participant_id(self, token):
        """Return the subject of a valid token, or None."""
        try:
            payload = self.validate_token(token)
            return payload.get('sub')
        except jwt.InvalidTokenError:
            return None


_jwt_manager = None


def _get_jwt_manager():
    """Get the global JWT manager instance, creating it if needed."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager


def generate_test_token(participant_id, role=None, expires_in_hours=24):
    """Generate a JWT token for the given participant ID."""
    return _get_jwt_manager().generate_token(participant_id, role, expires_in_hours)


def validate_jwt_token(token):
    """Validate a JWT token and return the payload."""
    return _get_jwt_manager().validate_token(token)


def get_participant_id_from_token(token):
    """Extract participant ID from JWT token."""
    return _get_jwt_manager().extract_participant_id(token)
