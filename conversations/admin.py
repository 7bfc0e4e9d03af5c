from django.contrib import admin
from .models import ConversationArchive, ReadWatermark


@admin.register(ReadWatermark)
class ReadWatermarkAdmin(admin.ModelAdmin):
    list_display = ['participant_id', 'conversation_key', 'last_read_at', 'updated_at']
    search_fields = ['participant_id', 'conversation_key']
    readonly_fields = ['updated_at']


@admin.register(ConversationArchive)
class ConversationArchiveAdmin(admin.ModelAdmin):
    list_display = ['participant_id', 'conversation_key', 'archived_at']
    search_fields = ['participant_id', 'conversation_key']
