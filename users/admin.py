from django.contrib import admin
from .models import Participant


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = (
        "participant_id",
        "display_name",
        "role",
        "is_active",
        "updated_at",
    )
    list_filter = ("role", "is_active")
    search_fields = ("participant_id", "display_name", "email")
