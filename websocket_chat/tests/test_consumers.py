from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.core.cache import cache
from django.test import TransactionTestCase, override_settings

from conversations.keys import resolve_key
from dmessages.models import Message
from farmlink.jwt_utils import generate_test_token
from users.models import Participant
from .. import delivery
from ..middleware import WebSocketAuthMiddleware, WebSocketSecurityMiddleware
from ..routing import websocket_urlpatterns

application = WebSocketSecurityMiddleware(WebSocketAuthMiddleware(URLRouter(websocket_urlpatterns)))


def communicator_for(participant_id, role):
    token = generate_test_token(participant_id, role)
    return WebsocketCommunicator(application, f"/ws/events/?token={token}")


@override_settings(MESSAGE_DELIVERY_ASYNC=False)
class ParticipantEventsConsumerTest(TransactionTestCase):
    def setUp(self):
        cache.clear()
        Participant.objects.create(participant_id='farmer-1', display_name='Wanjiru', role='farmer')
        Participant.objects.create(participant_id='adopter-2', display_name='Otieno', role='adopter')
        self.key = resolve_key('farmer-1', 'adopter-2')

    async def test_connection_without_token_is_closed(self):
        communicator = WebsocketCommunicator(application, "/ws/events/")

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    async def test_connection_with_bad_token_is_closed(self):
        communicator = WebsocketCommunicator(application, "/ws/events/?token=garbage")

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    @override_settings(WEBSOCKET_RATE_LIMIT=1)
    async def test_connection_storm_is_rate_limited(self):
        first = communicator_for('farmer-1', 'farmer')
        connected, _ = await first.connect()
        self.assertTrue(connected)

        second = communicator_for('farmer-1', 'farmer')
        connected, code = await second.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4029)
        await first.disconnect()

    async def test_send_over_socket_reaches_recipient(self):
        farmer = communicator_for('farmer-1', 'farmer')
        adopter = communicator_for('adopter-2', 'adopter')
        self.assertTrue((await farmer.connect())[0])
        self.assertTrue((await adopter.connect())[0])

        await farmer.send_json_to({
            'type': 'send_message',
            'client_id': 'c-1',
            'recipient_id': 'adopter-2',
            'content': 'The calf was born today',
            'idempotency_token': 'tok-1',
        })

        ack = await farmer.receive_json_from(timeout=5)
        self.assertEqual(ack['type'], 'message_ack')
        self.assertEqual(ack['client_id'], 'c-1')
        self.assertTrue(ack['created'])
        self.assertEqual(ack['message']['conversation_key'], self.key)

        event = await adopter.receive_json_from(timeout=5)
        self.assertEqual(event['type'], 'new_message')
        self.assertEqual(event['conversation_key'], self.key)
        self.assertEqual(event['message_preview']['content'], 'The calf was born today')

        message = await database_sync_to_async(Message.objects.get)(idempotency_token='tok-1')
        self.assertIsNotNone(message.delivered_at)

        await farmer.disconnect()
        await adopter.disconnect()

    async def test_replayed_send_is_acked_without_new_event(self):
        farmer = communicator_for('farmer-1', 'farmer')
        await farmer.connect()
        frame = {
            'type': 'send_message',
            'client_id': 'c-1',
            'recipient_id': 'adopter-2',
            'content': 'Hello',
            'idempotency_token': 'tok-1',
        }

        await farmer.send_json_to(frame)
        first = await farmer.receive_json_from(timeout=5)
        await farmer.send_json_to(frame)
        second = await farmer.receive_json_from(timeout=5)

        self.assertTrue(first['created'])
        self.assertFalse(second['created'])
        self.assertEqual(first['message']['id'], second['message']['id'])
        self.assertEqual(await database_sync_to_async(Message.objects.count)(), 1)
        await farmer.disconnect()

    async def test_failed_send_is_reported(self):
        farmer = communicator_for('farmer-1', 'farmer')
        await farmer.connect()

        await farmer.send_json_to({
            'type': 'send_message',
            'client_id': 'c-2',
            'recipient_id': 'farmer-1',
            'content': 'me',
        })
        response = await farmer.receive_json_from(timeout=5)

        self.assertEqual(response, {
            'type': 'message_failed',
            'client_id': 'c-2',
            'error': 'You cannot send a message to yourself.',
            'code': 'self_message',
            'retryable': False,
        })
        await farmer.disconnect()

    async def test_mark_read_reaches_every_tab(self):
        await database_sync_to_async(Message.objects.create)(
            sender_id='farmer-1',
            recipient_id='adopter-2',
            content='Hello',
            conversation_key=self.key,
        )
        tab_one = communicator_for('adopter-2', 'adopter')
        tab_two = communicator_for('adopter-2', 'adopter')
        await tab_one.connect()
        await tab_two.connect()

        await tab_one.send_json_to({'type': 'mark_read', 'conversation_key': self.key})

        frames = [await tab_one.receive_json_from(timeout=5), await tab_one.receive_json_from(timeout=5)]
        by_type = {frame['type']: frame for frame in frames}
        self.assertEqual(by_type['read_ack'], {'type': 'read_ack', 'conversation_key': self.key, 'marked': 1})
        self.assertEqual(by_type['conversation_read']['marked'], 1)

        other = await tab_two.receive_json_from(timeout=5)
        self.assertEqual(other['type'], 'conversation_read')
        self.assertEqual(other['conversation_key'], self.key)

        await tab_one.disconnect()
        await tab_two.disconnect()

    async def test_mark_read_on_foreign_conversation(self):
        outsider = communicator_for('expert-3', 'expert')
        await outsider.connect()

        await outsider.send_json_to({'type': 'mark_read', 'conversation_key': self.key})
        response = await outsider.receive_json_from(timeout=5)

        self.assertEqual(response['type'], 'error')
        self.assertEqual(response['code'], 'conversation_not_found')
        await outsider.disconnect()

    async def test_heartbeat(self):
        farmer = communicator_for('farmer-1', 'farmer')
        await farmer.connect()

        await farmer.send_json_to({'type': 'heartbeat'})
        response = await farmer.receive_json_from(timeout=5)

        self.assertEqual(response['type'], 'heartbeat')
        self.assertIn('timestamp', response)
        await farmer.disconnect()

    async def test_bad_frames(self):
        farmer = communicator_for('farmer-1', 'farmer')
        await farmer.connect()

        await farmer.send_to(text_data='{not json')
        self.assertEqual((await farmer.receive_json_from(timeout=5))['code'], 'invalid_json')

        await farmer.send_json_to({'type': 'typing_start'})
        self.assertEqual((await farmer.receive_json_from(timeout=5))['code'], 'unknown_type')

        await farmer.disconnect()

    @override_settings(WEBSOCKET_MAX_MESSAGE_SIZE=64)
    async def test_oversized_frame_is_rejected(self):
        farmer = communicator_for('farmer-1', 'farmer')
        await farmer.connect()

        await farmer.send_json_to({'type': 'send_message', 'recipient_id': 'adopter-2', 'content': 'x' * 200})
        response = await farmer.receive_json_from(timeout=5)

        self.assertEqual(response['code'], 'frame_too_large')
        self.assertEqual(await database_sync_to_async(Message.objects.count)(), 0)
        await farmer.disconnect()

    async def test_disconnect_clears_presence(self):
        farmer = communicator_for('farmer-1', 'farmer')
        await farmer.connect()
        self.assertTrue(await database_sync_to_async(delivery.is_online)('farmer-1'))

        await farmer.disconnect()

        self.assertFalse(await database_sync_to_async(delivery.is_online)('farmer-1'))
