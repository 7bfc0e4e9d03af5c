from django.core.management.base import BaseCommand
from django.db import transaction

from conversations.models import ReadWatermark
from conversations.services import ReadStateService


class Command(BaseCommand):
    help = "Recompute read watermarks from message read timestamps"

    def add_arguments(self, parser):
        parser.add_argument("--participant", help="Only rebuild watermarks for this participant id")
        parser.add_argument("--reset", action="store_true", help="Delete existing watermarks before rebuilding")
        parser.add_argument("--dry-run", action="store_true", help="Print counts only; do not update")

    def handle(self, *args, **options):
        participant_id = options.get("participant")
        dry_run = options.get("dry_run")

        with transaction.atomic():
            deleted = 0
            if options.get("reset"):
                existing = ReadWatermark._default_manager.all()
                if participant_id:
                    existing = existing.filter(participant_id=participant_id)
                deleted, _ = existing.delete()

            written = ReadStateService.rebuild_watermarks(participant_id)

            if dry_run:
                transaction.set_rollback(True)

        if deleted:
            self.stdout.write(self.style.WARNING(f"Watermarks deleted: {deleted}"))
        self.stdout.write(self.style.SUCCESS(f"Watermarks rebuilt: {written}"))
