from django.db import models


class ReadWatermark(models.Model):
    """
    How far a participant has read in one conversation.

    Derived from ``Message.read_at`` and advanced in the same transaction as
    mark-read; ``rebuild_read_watermarks`` recomputes it from messages alone.
    """
    participant_id = models.CharField(max_length=100)
    conversation_key = models.CharField(max_length=310)
    last_read_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'conversations_readwatermark'
        constraints = [
            models.UniqueConstraint(
                fields=['participant_id', 'conversation_key'],
                name='watermark_unique_participant_key',
            ),
        ]

    def __str__(self):
        return f"{self.participant_id} read {self.conversation_key} up to {self.last_read_at}"


class ConversationArchive(models.Model):
    """A conversation one participant has archived. The other participant is unaffected."""
    participant_id = models.CharField(max_length=100)
    conversation_key = models.CharField(max_length=310)
    archived_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'conversations_conversationarchive'
        constraints = [
            models.UniqueConstraint(
                fields=['participant_id', 'conversation_key'],
                name='archive_unique_participant_key',
            ),
        ]

    def __str__(self):
        return f"{self.participant_id} archived {self.conversation_key}"
