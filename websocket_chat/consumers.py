import asyncio
import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from django.utils import timezone

from conversations.services import ReadStateService
from dmessages.serializers import MessageSerializer
from dmessages.services import MessageService
from farmlink.exceptions import MessagingError, error_payload
from farmlink.permissions import has_capability, READ_CONVERSATION, SEND_MESSAGE
from . import delivery

logger = logging.getLogger(__name__)


class ParticipantEventsConsumer(AsyncWebsocketConsumer):
    """
    One live subscription of a participant.

    Every connection joins the participant's group, so all tabs and devices
    receive every ``new_message`` and ``conversation_read`` event. The socket
    can also be used to send messages and mark conversations read.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = None
        self.role = None
        self.group_name = None
        self.heartbeat_task = None

    async def connect(self):
        self.user_id = self.scope.get('user_id')
        if not self.user_id:
            await self.close(code=4001)
            return

        self.role = self.scope.get('role')
        self.group_name = delivery.participant_group(self.user_id)

        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await database_sync_to_async(delivery.register_connection)(self.user_id, self.channel_name)

        self.heartbeat_task = asyncio.create_task(self.heartbeat_loop())
        logger.debug(f"{self.user_id} subscribed on {self.channel_name}")

    async def disconnect(self, code):
        if self.heartbeat_task:
            self.heartbeat_task.cancel()

        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            await database_sync_to_async(delivery.unregister_connection)(self.user_id, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        if text_data is None:
            await self.send_error("Binary frames are not supported", code='unsupported_frame')
            return

        max_size = self.scope.get('max_message_size', settings.WEBSOCKET_MAX_MESSAGE_SIZE)
        if len(text_data) > max_size:
            await self.send_error("Message too large", code='frame_too_large')
            return

        try:
            data = json.loads(text_data)
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON format", code='invalid_json')
            return

        if not isinstance(data, dict):
            await self.send_error("Frames must be JSON objects", code='invalid_frame')
            return

        message_type = data.get('type')
        if message_type == 'heartbeat':
            await self.handle_heartbeat()
        elif message_type == 'send_message':
            await self.handle_send_message(data)
        elif message_type == 'mark_read':
            await self.handle_mark_read(data)
        else:
            await self.send_error("Unknown message type", code='unknown_type')

    async def handle_heartbeat(self):
        await database_sync_to_async(delivery.register_connection)(self.user_id, self.channel_name)
        await self.send_json({'type': 'heartbeat', 'timestamp': timezone.now().isoformat()})

    async def handle_send_message(self, data):
        client_id = data.get('client_id')

        if not has_capability(self.role, SEND_MESSAGE):
            await self.send_json({
                'type': 'message_failed',
                'client_id': client_id,
                'error': 'You are not allowed to send messages.',
                'code': 'capability_denied',
                'retryable': False,
            })
            return

        try:
            message, created = await self.send_message(data)
        except MessagingError as e:
            await self.send_json({'type': 'message_failed', 'client_id': client_id, **error_payload(e)})
            return

        await self.send_json({
            'type': 'message_ack',
            'client_id': client_id,
            'message': message,
            'created': created,
        })

    async def handle_mark_read(self, data):
        conversation_key = data.get('conversation_key')
        if not conversation_key:
            await self.send_error("conversation_key required", code='invalid')
            return

        if not has_capability(self.role, READ_CONVERSATION):
            await self.send_error("You are not allowed to read conversations.", code='capability_denied')
            return

        try:
            marked = await database_sync_to_async(ReadStateService.mark_read)(self.user_id, conversation_key)
        except MessagingError as e:
            await self.send_json({'type': 'error', **error_payload(e)})
            return

        await self.send_json({'type': 'read_ack', 'conversation_key': conversation_key, 'marked': marked})

    @database_sync_to_async
    def send_message(self, data):
        result = MessageService.send(
            sender_id=self.user_id,
            recipient_id=str(data.get('recipient_id') or ''),
            content=data.get('content') or '',
            media_ref=data.get('media_ref'),
            context_id=data.get('context_id'),
            idempotency_token=data.get('idempotency_token'),
            attachment_type=data.get('attachment_type'),
        )
        return MessageSerializer(result.message).data, result.created

    async def participant_event(self, event):
        """Forward an event published to this participant's group."""
        await self.send_json(event['event'])

    async def heartbeat_loop(self):
        interval = self.scope.get('heartbeat_interval', settings.WEBSOCKET_HEARTBEAT_INTERVAL)
        while True:
            try:
                await asyncio.sleep(interval)
                await self.send_json({'type': 'heartbeat', 'timestamp': timezone.now().isoformat()})
            except asyncio.CancelledError:
                break

    async def send_json(self, payload):
        await self.send(text_data=json.dumps(payload, default=str))

    async def send_error(self, message, code='error'):
        await self.send_json({'type': 'error', 'error': message, 'code': code, 'retryable': False})
