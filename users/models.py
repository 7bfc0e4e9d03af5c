from django.db import models


class Participant(models.Model):
    """Local mirror of a profile owned by the identity service."""

    ROLE_CHOICES = [
        ("farmer", "Farmer"),
        ("adopter", "Adopter"),
        ("expert", "Expert"),
        ("admin", "Admin"),
    ]

    participant_id = models.CharField(max_length=100, unique=True, primary_key=True)
    display_name = models.CharField(max_length=255)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    avatar_url = models.URLField(max_length=500, null=True, blank=True)
    email = models.EmailField(max_length=255, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'participants'
        indexes = [
            models.Index(fields=['role'], name='participants_role_idx'),
            models.Index(fields=['display_name'], name='participants_name_idx'),
        ]

    def __str__(self):
        return f"{self.display_name} ({self.participant_id})"
