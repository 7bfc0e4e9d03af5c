from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from dmessages.models import Message
from farmlink.jwt_utils import generate_test_token
from users.models import Participant
from ..keys import resolve_key
from ..models import ReadWatermark
from .test_services import make_message


@override_settings(MESSAGE_DELIVERY_ASYNC=False)
class ConversationEndpointsTest(APITestCase):
    def setUp(self):
        cache.clear()
        Participant.objects.create(participant_id='farmer-a', display_name='Amina', role='farmer')
        Participant.objects.create(participant_id='adopter-b', display_name='Brian', role='adopter')
        self.key = resolve_key('farmer-a', 'adopter-b')
        make_message('farmer-a', 'adopter-b', 'Hello')

    def authenticate(self, participant_id, role):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {generate_test_token(participant_id, role)}')

    def test_requires_authentication(self):
        response = self.client.get('/conversations/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['code'], 'not_authenticated')

    def test_invalid_token_is_rejected(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = self.client.get('/conversations/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_conversations(self):
        self.authenticate('adopter-b', 'adopter')

        response = self.client.get('/conversations/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_count'], 1)
        self.assertIsNone(response.data['next_page'])
        summary = response.data['results'][0]
        self.assertEqual(summary['conversation_key'], self.key)
        self.assertEqual(summary['unread_count'], 1)
        self.assertEqual(summary['last_message']['content'], 'Hello')
        self.assertEqual(summary['counterpart']['display_name'], 'Amina')
        self.assertEqual(summary['counterpart']['role'], 'farmer')

    def test_unread_badge(self):
        self.authenticate('adopter-b', 'adopter')

        response = self.client.get('/conversations/unread/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['unread_total'], 1)

    def test_messages_and_mark_read(self):
        self.authenticate('adopter-b', 'adopter')

        response = self.client.get(f'/conversations/{self.key}/messages/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([m['content'] for m in response.data['results']], ['Hello'])
        self.assertFalse(response.data['results'][0]['is_read'])

        response = self.client.post(f'/conversations/{self.key}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'conversation_key': self.key, 'marked': 1})

        response = self.client.post(f'/conversations/{self.key}/read/')
        self.assertEqual(response.data['marked'], 0)

    def test_since_filter(self):
        self.authenticate('farmer-a', 'farmer')
        first = Message.objects.get()
        make_message('adopter-b', 'farmer-a', 'Hi back')

        response = self.client.get(
            f'/conversations/{self.key}/messages/',
            {'since': first.created_at.isoformat()},
        )

        self.assertEqual([m['content'] for m in response.data['results']], ['Hi back'])

    def test_bad_since_is_rejected(self):
        self.authenticate('farmer-a', 'farmer')

        response = self.client.get(f'/conversations/{self.key}/messages/', {'since': 'yesterday'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_since')

    def test_outsider_cannot_read(self):
        self.authenticate('expert-c', 'expert')

        response = self.client.get(f'/conversations/{self.key}/messages/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'conversation_not_found')
        self.assertFalse(response.data['retryable'])

    def test_outsider_cannot_mark_read(self):
        self.authenticate('expert-c', 'expert')

        response = self.client.post(f'/conversations/{self.key}/read/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(Message.objects.filter(read_at__isnull=False).count(), 0)

    def test_admin_can_observe(self):
        self.authenticate('admin-1', 'admin')

        response = self.client.get(f'/conversations/{self.key}/messages/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_count'], 1)

    def test_search(self):
        make_message('adopter-b', 'farmer-a', 'hello again')
        make_message('expert-c', 'adopter-b', 'Hello from the vet')
        self.authenticate('farmer-a', 'farmer')

        response = self.client.get('/conversations/search/', {'q': ' hello '})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['query'], 'hello')
        self.assertEqual([m['content'] for m in response.data['results']], ['hello again', 'Hello'])

    def test_search_needs_a_query(self):
        self.authenticate('farmer-a', 'farmer')

        response = self.client.get('/conversations/search/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_query')

    def test_archive_and_unarchive(self):
        self.authenticate('adopter-b', 'adopter')

        response = self.client.post(f'/conversations/{self.key}/archive/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['archived'])

        self.assertEqual(self.client.get('/conversations/').data['total_count'], 0)
        archived = self.client.get('/conversations/', {'archived': 'true'})
        self.assertEqual([s['conversation_key'] for s in archived.data['results']], [self.key])
        self.assertTrue(archived.data['results'][0]['archived'])

        response = self.client.delete(f'/conversations/{self.key}/archive/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['archived'])
        self.assertEqual(self.client.get('/conversations/').data['total_count'], 1)

    def test_outsider_cannot_archive(self):
        self.authenticate('expert-c', 'expert')

        response = self.client.post(f'/conversations/{self.key}/archive/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_role_without_capability_is_forbidden(self):
        self.authenticate('guest-1', 'guest')

        response = self.client.get('/conversations/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class RebuildWatermarksCommandTest(APITestCase):

    def test_rebuild_and_dry_run(self):
        key = resolve_key('farmer-a', 'adopter-b')
        message = make_message('farmer-a', 'adopter-b', 'Hello')
        Message.objects.filter(pk=message.pk).update(read_at=message.created_at)

        out = StringIO()
        call_command('rebuild_read_watermarks', '--dry-run', stdout=out)
        self.assertIn('Watermarks rebuilt: 1', out.getvalue())
        self.assertFalse(ReadWatermark.objects.exists())

        call_command('rebuild_read_watermarks', stdout=StringIO())
        watermark = ReadWatermark.objects.get(participant_id='adopter-b', conversation_key=key)
        self.assertEqual(watermark.last_read_at, message.created_at)
