from rest_framework import serializers
from .models import Message


class WhitespaceAllowedCharField(serializers.CharField):
    """Custom CharField that allows whitespace-only content"""

    def __init__(self, **kwargs):
        kwargs.setdefault('allow_blank', True)
        kwargs.setdefault('trim_whitespace', False)
        super().__init__(**kwargs)

    def to_internal_value(self, data: str | None) -> str:
        if data is None:
            raise serializers.ValidationError("This field may not be null.")
        return str(data)


class SendMessageSerializer(serializers.Serializer):
    """Shape of a send request; business rules live in MessageService.send."""
    recipient_id = serializers.CharField(max_length=100)
    content = WhitespaceAllowedCharField(required=False, default="")
    media_ref = serializers.CharField(max_length=500, required=False, allow_null=True, allow_blank=True)
    attachment_type = serializers.ChoiceField(
        choices=["image", "video", "audio", "file"], required=False, allow_null=True
    )
    context_id = serializers.CharField(max_length=100, required=False, allow_null=True, allow_blank=True)
    idempotency_token = serializers.CharField(max_length=100, required=False, allow_null=True, allow_blank=True)

    def validate_recipient_id(self, value):
        """Validate recipient_id"""
        if not value or not value.strip():
            raise serializers.ValidationError("Recipient ID cannot be empty.")
        return value.strip()


class MessageSerializer(serializers.ModelSerializer):
    is_read = serializers.BooleanField(read_only=True)
    is_delivered = serializers.BooleanField(read_only=True)

    class Meta:
        model = Message
        fields = [
            'id', 'conversation_key', 'sender_id', 'recipient_id', 'content', 'media_ref',
            'message_type', 'context_id', 'idempotency_token', 'created_at',
            'delivered_at', 'read_at', 'is_delivered', 'is_read',
        ]
        read_only_fields = fields


class MessagePreviewSerializer(serializers.ModelSerializer):
    """Last-message preview for conversation lists (not the full message)."""
    content = serializers.CharField(source='preview', read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'sender_id', 'content', 'message_type', 'created_at', 'read_at']
        read_only_fields = fields
