"""Background job dispatch: in-process tasks or a durable RabbitMQ queue."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Set, Union

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.jobs import DeletionJob, IngestionJob
from knowledge_ingestion.utils.errors import QueueError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("job_dispatcher")
settings = get_settings()

Job = Union[IngestionJob, DeletionJob]
JobHandler = Callable[[Job], Awaitable[Any]]


class JobDispatcher(ABC):
    """Hands jobs to whatever runs them; the caller never waits for the job."""

    def __init__(self) -> None:
        self._handler: Optional[JobHandler] = None

    def bind(self, handler: JobHandler) -> None:
        self._handler = handler

    @abstractmethod
    async def dispatch(self, job: Job) -> None:
        """
        Raises:
            QueueError: The job could not be handed off
        """

    async def close(self) -> None:
        return None


class InProcessJobDispatcher(JobDispatcher):
    """
    Run jobs as asyncio tasks in this process.

    At-most-once: a job still running when the process dies is lost.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(self, job: Job) -> None:
        if self._handler is None:
            raise QueueError("No job handler bound to dispatcher")

        task = asyncio.create_task(self._run(job), name=f"{job.job_type}-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Job scheduled in-process: job_id={job.job_id}, type={job.job_type}")

    async def _run(self, job: Job) -> None:
        assert self._handler is not None
        try:
            await self._handler(job)
        except Exception as e:
            logger.error(f"Job failed: job_id={job.job_id}, type={job.job_type} - {e}", exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every scheduled job (including ones scheduled meanwhile) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()


class RabbitMQJobDispatcher(JobDispatcher):
    """
    Publish jobs as persistent JSON messages.

    At-least-once: `QueueConsumer` acknowledges only after the job body
    returns, so a crash mid-job means redelivery.
    """

    def __init__(self) -> None:
        super().__init__()
        self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._exchange: Optional[aio_pika.abc.AbstractExchange] = None

    async def connect(self) -> None:
        if self._connection and not self._connection.is_closed:
            return

        self._connection = await aio_pika.connect_robust(settings.rabbitmq.url)
        self._channel = await self._connection.channel()
        self._exchange = await self._channel.declare_exchange(
            name=settings.rabbitmq.exchange_name,
            type=ExchangeType.DIRECT,
            durable=True,
        )
        logger.info(
            f"RabbitMQ publisher connected: exchange={settings.rabbitmq.exchange_name}, "
            f"routing_key={settings.rabbitmq.routing_key}"
        )

    async def dispatch(self, job: Job) -> None:
        message = Message(
            body=job.model_dump_json().encode("utf-8"),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=job.job_id,
            type=job.job_type,
        )
        try:
            if not self._exchange:
                await self.connect()
            assert self._exchange is not None
            await self._exchange.publish(message, routing_key=settings.rabbitmq.routing_key)
        except Exception as e:
            logger.error(f"Failed to publish job {job.job_id}: {e}", exc_info=True)
            raise QueueError(
                f"Failed to publish job: {str(e)}",
                details={"job_id": job.job_id, "job_type": job.job_type},
            ) from e
        logger.info(f"Job published: job_id={job.job_id}, type={job.job_type}")

    async def close(self) -> None:
        try:
            if self._channel and not self._channel.is_closed:
                await self._channel.close()
        finally:
            self._channel = None
            self._exchange = None
        try:
            if self._connection and not self._connection.is_closed:
                await self._connection.close()
        finally:
            self._connection = None
