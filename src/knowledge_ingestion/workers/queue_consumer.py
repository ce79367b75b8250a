"""Consume job messages from RabbitMQ and run them."""

from typing import Optional

import aio_pika
from aio_pika.abc import AbstractConnection, AbstractIncomingMessage, AbstractQueue
from pydantic import ValidationError as PydanticValidationError

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.jobs import parse_job
from knowledge_ingestion.utils.errors import IngestionException
from knowledge_ingestion.utils.logging import get_logger
from knowledge_ingestion.workers.job_runner import JobRunner

logger = get_logger("queue_consumer")
settings = get_settings()


class QueueConsumer:
    """
    RabbitMQ consumer for ingestion and deletion jobs.

    A message is acknowledged once its job returns. Unparseable messages and
    jobs that raise are rejected without requeue and end up in the
    dead-letter queue.
    """

    def __init__(self, connection: AbstractConnection, runner: JobRunner):
        self.connection = connection
        self.runner = runner
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None
        self._running = False

    async def start(self) -> None:
        if self._running:
            logger.warning("Queue consumer is already running")
            return

        try:
            self.channel = await self.connection.channel()
            await self.channel.set_qos(prefetch_count=settings.rabbitmq.prefetch_count)
            self.queue = await self.channel.declare_queue(
                name=settings.rabbitmq.queue_name,
                passive=True,
            )
            self._running = True
            self._consumer_tag = await self.queue.consume(self.handle_message)
            logger.info(
                f"Consuming jobs from {settings.rabbitmq.queue_name} "
                f"(prefetch={settings.rabbitmq.prefetch_count})"
            )
        except Exception as e:
            logger.error(f"Failed to start queue consumer: {e}", exc_info=True)
            self._running = False
            raise

    async def stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping queue consumer...")
        self._running = False

        if self.queue and self._consumer_tag:
            try:
                await self.queue.cancel(self._consumer_tag)
            except Exception as e:
                logger.error(f"Error cancelling queue consumer: {e}", exc_info=True)
            finally:
                self._consumer_tag = None

        if self.channel and not self.channel.is_closed:
            try:
                await self.channel.close()
            except Exception as e:
                logger.error(f"Error closing consumer channel: {e}", exc_info=True)

    async def handle_message(self, message: AbstractIncomingMessage) -> None:
        """Ack on success; any exception rejects the message to the DLQ."""
        async with message.process(requeue=False):
            try:
                job = parse_job(message.body)
            except PydanticValidationError as e:
                logger.error(f"Invalid job message {message.message_id}: {e}")
                raise

            try:
                await self.runner.run(job)
            except IngestionException as e:
                logger.error(
                    f"Job failed: job_id={job.job_id} - {e.message} (status_code={e.status_code})"
                )
                raise
            except Exception as e:
                logger.error(f"Unexpected error running job {job.job_id}: {e}", exc_info=True)
                raise

    @property
    def is_running(self) -> bool:
        return self._running
