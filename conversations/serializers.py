from rest_framework import serializers
from dmessages.serializers import MessagePreviewSerializer


class CounterpartSerializer(serializers.Serializer):
    participant_id = serializers.CharField()
    display_name = serializers.CharField()
    role = serializers.CharField()
    avatar_ref = serializers.CharField(allow_null=True)


class ConversationSummarySerializer(serializers.Serializer):
    """Lightweight serializer for listing conversations (without messages)"""
    conversation_key = serializers.CharField()
    context_id = serializers.CharField(allow_null=True)
    counterpart = CounterpartSerializer()
    last_message = MessagePreviewSerializer()
    unread_count = serializers.IntegerField()
    last_activity_at = serializers.DateTimeField()
    last_read_at = serializers.DateTimeField(allow_null=True)
    archived = serializers.BooleanField()
