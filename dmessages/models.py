from django.conf import settings
from django.db import models
from django.db.models import F, Q


class Message(models.Model):
    """
    One immutable message between exactly two participants.

    Only ``delivered_at`` and ``read_at`` change after insert, each exactly
    once, through conditional updates (``... WHERE read_at IS NULL``).
    """

    MESSAGE_TYPE_CHOICES = [
        ("text", "Text"),
        ("image", "Image"),
        ("video", "Video"),
        ("audio", "Audio"),
        ("file", "File"),
    ]

    sender_id = models.CharField(max_length=100)
    recipient_id = models.CharField(max_length=100)
    content = models.TextField(blank=True, default="")
    media_ref = models.CharField(max_length=500, null=True, blank=True)
    message_type = models.CharField(max_length=10, choices=MESSAGE_TYPE_CHOICES, default="text")
    context_id = models.CharField(max_length=100, null=True, blank=True)
    conversation_key = models.CharField(max_length=310, editable=False)
    idempotency_token = models.CharField(max_length=100, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'dmessages_message'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['sender_id', 'created_at'], name='dmessage_sender_created_idx'),
            models.Index(fields=['recipient_id', 'created_at'], name='dmessage_recip_created_idx'),
            models.Index(fields=['conversation_key', 'created_at'], name='dmessage_conv_created_idx'),
            models.Index(fields=['recipient_id', 'read_at'], name='dmessage_recip_read_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['sender_id', 'idempotency_token'],
                condition=Q(idempotency_token__isnull=False),
                name='dmessage_unique_sender_token',
            ),
            models.CheckConstraint(
                condition=~Q(sender_id=F('recipient_id')),
                name='dmessage_no_self_messaging',
            ),
        ]

    def __str__(self):
        return f"{self.sender_id} to {self.recipient_id}: {self.preview}"

    @property
    def is_read(self):
        return self.read_at is not None

    @property
    def is_delivered(self):
        return self.delivered_at is not None

    @property
    def preview(self):
        limit = getattr(settings, 'MESSAGE_PREVIEW_LENGTH', 100)
        text = self.content or ''
        if not text and self.media_ref:
            return f"[{self.message_type}]"
        return text[:limit] + '...' if len(text) > limit else text

    def counterpart_of(self, participant_id):
        return self.recipient_id if self.sender_id == participant_id else self.sender_id
