import threading
from importlib import import_module

from django.apps import apps
from django.core.management.base import BaseCommand, CommandError

from event_bus.registry import registered_consumers


class Command(BaseCommand):
    help = "Start every registered event bus consumer (one thread per queue)"

    def add_arguments(self, parser):
        parser.add_argument(
            '--queue',
            action='append',
            dest='queues',
            help='Only start the consumer bound to this queue (repeatable)',
        )

    def handle(self, *args, **options):
        # Consumers register themselves when their app's consumers module is imported.
        for app_config in apps.get_app_configs():
            try:
                import_module(f"{app_config.name}.consumers")
            except ModuleNotFoundError as e:
                if e.name != f"{app_config.name}.consumers":
                    raise

        consumers = registered_consumers()
        if options.get('queues'):
            consumers = [c for c in consumers if c.queue_name in options['queues']]

        if not consumers:
            raise CommandError('No event bus consumers registered')

        threads = []
        for consumer_cls in consumers:
            self.stdout.write(f"Starting {consumer_cls.__name__} on {consumer_cls.queue_name}")
            thread = threading.Thread(target=consumer_cls().start, name=consumer_cls.queue_name, daemon=True)
            thread.start()
            threads.append(thread)

        for thread in threads:
            thread.join()
