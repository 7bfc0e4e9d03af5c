"""
ASGI config for farmlink project.

It exposes the ASGI callable as a module-level variable named ``application``.
HTTP goes to Django, WebSocket subscriptions go through token authentication
to the participant events consumer.
"""

import os
import django

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'farmlink.settings')
django.setup()

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from websocket_chat.routing import websocket_urlpatterns
from websocket_chat.middleware import WebSocketAuthMiddleware, WebSocketSecurityMiddleware

django_asgi_app = get_asgi_application()

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": WebSocketSecurityMiddleware(
        WebSocketAuthMiddleware(
            URLRouter(
                websocket_urlpatterns
            )
        )
    ),
})
