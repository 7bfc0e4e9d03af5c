import logging

import pika
from django.conf import settings

logger = logging.getLogger(__name__)


class BaseConsumer:
    queue_name = None
    exchange_name = None
    exchange_type = "topic"
    routing_key = "#"

    def handle_message(self, body: str, routing_key: str):
        """Override this in subclasses."""
        raise NotImplementedError

    def connection_parameters(self):
        creds = pika.PlainCredentials(
            settings.RABBITMQ_USER, settings.RABBITMQ_PASSWORD
        )
        return pika.ConnectionParameters(
            host=settings.RABBITMQ_HOST,
            port=settings.RABBITMQ_PORT,
            virtual_host=settings.RABBITMQ_VHOST,
            credentials=creds,
        )

    def declare(self, ch):
        # Declare exchange if specified
        if self.exchange_name:
            ch.exchange_declare(
                exchange=self.exchange_name,
                exchange_type=self.exchange_type,
                durable=True,
            )

        ch.queue_declare(queue=self.queue_name, durable=True)

        if self.exchange_name:
            ch.queue_bind(
                queue=self.queue_name,
                exchange=self.exchange_name,
                routing_key=self.routing_key,
            )

    def on_message(self, ch, method, properties, body):
        try:
            self.handle_message(body.decode(), method.routing_key)
        except Exception:
            logger.exception(f"[event_bus] Handler for '{self.queue_name}' failed")
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return
        ch.basic_ack(delivery_tag=method.delivery_tag)

    def start(self):
        conn = pika.BlockingConnection(self.connection_parameters())
        ch = conn.channel()
        self.declare(ch)

        ch.basic_consume(
            queue=self.queue_name,
            on_message_callback=self.on_message,
        )

        logger.info(
            f"[event_bus] Listening on queue '{self.queue_name}'"
            f"{' bound to exchange ' + self.exchange_name if self.exchange_name else ''}…"
        )
        ch.start_consuming()
