from django.contrib import admin
from .models import Message


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'conversation_key', 'sender_id', 'recipient_id', 'content_preview', 'created_at', 'read_at']
    list_filter = ['message_type', 'created_at']
    search_fields = ['content', 'sender_id', 'recipient_id', 'conversation_key']
    readonly_fields = [
        'sender_id', 'recipient_id', 'conversation_key', 'context_id', 'idempotency_token',
        'created_at', 'delivered_at', 'read_at',
    ]

    @admin.display(description='Content Preview')
    def content_preview(self, obj):
        return obj.content[:50] + "..." if len(obj.content) > 50 else obj.content
