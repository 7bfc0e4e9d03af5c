from unittest.mock import Mock, patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone

from conversations.keys import resolve_key
from conversations.services import ConversationService
from dmessages.models import Message
from dmessages.services import MessageService
from users.models import Participant
from .. import delivery


class PresenceTest(TestCase):
    def setUp(self):
        cache.clear()

    def test_register_and_unregister(self):
        delivery.register_connection('farmer-1', 'chan-a')
        delivery.register_connection('farmer-1', 'chan-b')
        self.assertTrue(delivery.is_online('farmer-1'))

        delivery.unregister_connection('farmer-1', 'chan-a')
        self.assertTrue(delivery.is_online('farmer-1'))

        delivery.unregister_connection('farmer-1', 'chan-b')
        self.assertFalse(delivery.is_online('farmer-1'))

    def test_cache_failure_means_offline(self):
        with patch('websocket_chat.delivery.cache') as broken:
            broken.get.side_effect = ConnectionError('cache down')
            self.assertFalse(delivery.is_online('farmer-1'))


@override_settings(MESSAGE_DELIVERY_ASYNC=False)
class PublishTest(TestCase):
    def setUp(self):
        cache.clear()
        self.message = Message.objects.create(
            sender_id='farmer-1',
            recipient_id='adopter-2',
            content='Hello',
            conversation_key=resolve_key('farmer-1', 'adopter-2'),
        )

    def test_new_message_event_shape(self):
        event = delivery.new_message_event(self.message)

        self.assertEqual(event['type'], 'new_message')
        self.assertEqual(event['conversation_key'], 'adopter-2:farmer-1')
        self.assertEqual(event['message_preview']['content'], 'Hello')
        self.assertEqual(event['message_preview']['sender_id'], 'farmer-1')

    def test_publish_sends_to_participant_group(self):
        layer = Mock()

        async def group_send(group, payload):
            layer.sent.append((group, payload))

        layer.sent = []
        layer.group_send = group_send
        with patch('websocket_chat.delivery.get_channel_layer', return_value=layer):
            self.assertTrue(delivery.publish('adopter-2', {'type': 'ping'}))

        self.assertEqual(layer.sent, [('participant_adopter-2', {'type': 'participant.event', 'event': {'type': 'ping'}})])

    def test_publish_failure_is_swallowed(self):
        layer = Mock()

        async def group_send(group, payload):
            raise ConnectionError('redis down')

        layer.group_send = group_send
        with patch('websocket_chat.delivery.get_channel_layer', return_value=layer):
            self.assertFalse(delivery.publish('adopter-2', {'type': 'ping'}))

    def test_delivered_at_set_only_when_online(self):
        self.assertFalse(delivery.deliver_new_message(self.message))
        self.message.refresh_from_db()
        self.assertIsNone(self.message.delivered_at)

        delivery.register_connection('adopter-2', 'chan-a')
        self.assertTrue(delivery.deliver_new_message(self.message))
        self.message.refresh_from_db()
        self.assertIsNotNone(self.message.delivered_at)

    def test_delivered_at_is_not_overwritten(self):
        delivery.register_connection('adopter-2', 'chan-a')
        delivery.deliver_new_message(self.message)
        self.message.refresh_from_db()
        first = self.message.delivered_at

        delivery.deliver_new_message(self.message)
        self.message.refresh_from_db()

        self.assertEqual(self.message.delivered_at, first)

    @override_settings(MESSAGE_DELIVERY_ASYNC=True)
    def test_dispatch_runs_on_worker_pool(self):
        func = Mock(return_value=None)

        future = delivery.dispatch(func, 'a', 'b')
        future.result(timeout=5)

        func.assert_called_once_with('a', 'b')

    def test_conversation_read_event(self):
        read_at = timezone.now()

        event = delivery.conversation_read_event('adopter-2:farmer-1', 3, read_at)

        self.assertEqual(event, {
            'type': 'conversation_read',
            'conversation_key': 'adopter-2:farmer-1',
            'marked': 3,
            'read_at': read_at.isoformat(),
        })


@override_settings(MESSAGE_DELIVERY_ASYNC=False)
class OfflineRecipientTest(TestCase):
    def setUp(self):
        cache.clear()
        Participant.objects.create(participant_id='farmer-1', display_name='Wanjiru', role='farmer')
        Participant.objects.create(participant_id='adopter-2', display_name='Otieno', role='adopter')

    def test_message_survives_dropped_publish(self):
        with patch('websocket_chat.delivery.get_channel_layer', return_value=None):
            with self.captureOnCommitCallbacks(execute=True):
                result = MessageService.send('farmer-1', 'adopter-2', 'Are you there?')

        result.message.refresh_from_db()
        self.assertIsNone(result.message.delivered_at)

        page = ConversationService.list_conversations('adopter-2')
        self.assertEqual(page.results[0].unread_count, 1)
        self.assertEqual(page.results[0].last_message.content, 'Are you there?')
