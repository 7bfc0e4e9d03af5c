import logging
import time
from urllib.parse import parse_qs

import jwt
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.core.cache import cache
from rest_framework.exceptions import AuthenticationFailed

from farmlink.authentication import participant_from_claims
from farmlink.jwt_utils import validate_jwt_token

logger = logging.getLogger(__name__)


class WebSocketAuthMiddleware(BaseMiddleware):
    """
    Authenticates event subscriptions.

    The identity token comes in the ``token`` query parameter. Connections
    without a valid token are closed with 4001, connection storms with 4029.
    """

    async def __call__(self, scope, receive, send):
        query_params = parse_qs(scope.get('query_string', b'').decode())
        token = query_params.get('token', [None])[0]

        if not token:
            await send({
                'type': 'websocket.close',
                'code': 4001,
                'reason': 'Authentication token required'
            })
            return

        participant = await self.authenticate(token)
        if participant is None:
            await send({
                'type': 'websocket.close',
                'code': 4001,
                'reason': 'Invalid authentication token'
            })
            return

        if not self.check_rate_limit(participant.participant_id):
            await send({
                'type': 'websocket.close',
                'code': 4029,
                'reason': 'Rate limit exceeded'
            })
            return

        scope['user_id'] = participant.participant_id
        scope['role'] = participant.role
        scope['authenticated'] = True

        return await super().__call__(scope, receive, send)

    @database_sync_to_async
    def authenticate(self, token):
        try:
            payload = validate_jwt_token(token)
            return participant_from_claims(payload)
        except (jwt.InvalidTokenError, AuthenticationFailed) as e:
            logger.info(f"WebSocket token rejected: {e}")
            return None

    def check_rate_limit(self, participant_id):
        """Allow at most WEBSOCKET_RATE_LIMIT connection attempts per minute."""
        cache_key = f"websocket_rate_limit:{participant_id}"
        current_time = int(time.time())

        rate_data = cache.get(cache_key, {'count': 0, 'window_start': current_time})
        if current_time - rate_data['window_start'] >= 60:
            rate_data = {'count': 0, 'window_start': current_time}

        if rate_data['count'] >= settings.WEBSOCKET_RATE_LIMIT:
            logger.warning(f"WebSocket rate limit hit for {participant_id}")
            return False

        rate_data['count'] += 1
        cache.set(cache_key, rate_data, 60)
        return True


class WebSocketSecurityMiddleware(BaseMiddleware):
    """Copies frame size and timing limits into the scope."""

    async def __call__(self, scope, receive, send):
        scope['max_message_size'] = settings.WEBSOCKET_MAX_MESSAGE_SIZE
        scope['connection_timeout'] = settings.WEBSOCKET_CONNECTION_TIMEOUT
        scope['heartbeat_interval'] = settings.WEBSOCKET_HEARTBEAT_INTERVAL

        return await super().__call__(scope, receive, send)
