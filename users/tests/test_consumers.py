import json

from django.core.cache import cache
from django.test import TestCase

from event_bus.registry import registered_consumers
from ..consumers import (
    ParticipantCreatedEventConsumer,
    ParticipantDeletedEventConsumer,
    ParticipantUpdatedEventConsumer,
    decode_event,
)
from ..identity import get_identity_provider
from ..models import Participant


def event(**payload):
    return json.dumps({'event': 'participant', 'payload': payload})


class ParticipantEventConsumerTest(TestCase):
    def setUp(self):
        cache.clear()

    def test_consumers_are_registered(self):
        registered = registered_consumers()
        for consumer in (ParticipantCreatedEventConsumer, ParticipantUpdatedEventConsumer, ParticipantDeletedEventConsumer):
            self.assertIn(consumer, registered)

    def test_created_event_mirrors_participant(self):
        ParticipantCreatedEventConsumer().handle_message(
            event(participant_id='farmer-1', full_name='Wanjiru', role='farmer', email='w@example.com'),
            'identity.participant.created',
        )

        participant = Participant.objects.get(participant_id='farmer-1')
        self.assertEqual(participant.display_name, 'Wanjiru')
        self.assertEqual(participant.role, 'farmer')
        self.assertTrue(participant.is_active)

    def test_updated_event_refreshes_cached_snapshot(self):
        Participant.objects.create(participant_id='farmer-1', display_name='Wanjiru', role='farmer')
        get_identity_provider().resolve_participant('farmer-1')

        ParticipantUpdatedEventConsumer().handle_message(
            event(participant_id='farmer-1', full_name='Wanjiru Kamau', role='farmer'),
            'identity.participant.updated',
        )

        self.assertEqual(get_identity_provider().resolve_participant('farmer-1').display_name, 'Wanjiru Kamau')

    def test_deleted_event_deactivates(self):
        Participant.objects.create(participant_id='farmer-1', display_name='Wanjiru', role='farmer')

        ParticipantDeletedEventConsumer().handle_message(event(participant_id='farmer-1'), 'identity.participant.deleted')

        self.assertFalse(Participant.objects.get(participant_id='farmer-1').is_active)
        self.assertTrue(get_identity_provider().resolve_or_placeholder('farmer-1').is_placeholder)

    def test_deleted_event_for_unknown_participant_leaves_tombstone(self):
        ParticipantDeletedEventConsumer().handle_message(event(participant_id='never-seen'), 'identity.participant.deleted')

        self.assertFalse(Participant.objects.get(participant_id='never-seen').is_active)

    def test_bad_events_are_ignored(self):
        self.assertIsNone(decode_event('not json'))
        self.assertIsNone(decode_event(json.dumps({'payload': {}})))
        self.assertIsNone(decode_event(json.dumps(['list'])))

        ParticipantCreatedEventConsumer().handle_message('not json', 'identity.participant.created')
        self.assertEqual(Participant.objects.count(), 0)
