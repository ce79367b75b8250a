"""Tests for job models, dispatchers, the runner and the queue consumer."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from knowledge_ingestion.models.jobs import DeletionJob, IngestionJob, parse_job
from knowledge_ingestion.services.queue_setup import declare_topology, setup_queues
from knowledge_ingestion.utils.errors import QueueError, ValidationError
from knowledge_ingestion.workers.job_dispatcher import InProcessJobDispatcher, RabbitMQJobDispatcher
from knowledge_ingestion.workers.job_runner import JobRunner
from knowledge_ingestion.workers.queue_consumer import QueueConsumer

from tests.conftest import TENANT


def _ingestion_job(**fields) -> IngestionJob:
    values = dict(
        tenant_id=TENANT,
        namespace=TENANT,
        display_name="faq.txt",
        filename="faq.txt",
        mime_type="text/plain",
        storage_handle=f"{TENANT}/abc/faq.txt",
    )
    values.update(fields)
    return IngestionJob(**values)


class FakeMessage:
    """Stands in for an aio-pika incoming message."""

    def __init__(self, body: bytes, message_id: str = "msg-1"):
        self.body = body
        self.message_id = message_id
        self.acked = False
        self.rejected = False

    @asynccontextmanager
    async def process(self, requeue: bool = False):
        try:
            yield self
        except Exception:
            self.rejected = True
            raise
        else:
            self.acked = True


class TestJobMessages:
    """Test job message encoding."""

    def test_ingestion_job_round_trip(self):
        job = _ingestion_job(category="billing", is_retry=True)
        parsed = parse_job(job.model_dump_json().encode("utf-8"))
        assert isinstance(parsed, IngestionJob)
        assert parsed == job

    def test_deletion_job_is_discriminated(self):
        job = DeletionJob(tenant_id=TENANT, namespace=TENANT, display_name="faq.txt")
        parsed = parse_job(job.model_dump_json().encode("utf-8"))
        assert isinstance(parsed, DeletionJob)
        assert parsed.document_id.display_name == "faq.txt"

    def test_unknown_job_type_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            parse_job(b'{"job_type": "reindex", "tenant_id": "t"}')

    def test_job_ids_are_unique(self):
        assert _ingestion_job().job_id != _ingestion_job().job_id


class TestInProcessDispatcher:
    """Test in-process job execution."""

    async def test_dispatch_runs_bound_handler(self):
        dispatcher = InProcessJobDispatcher()
        seen = []

        async def handler(job):
            seen.append(job.job_id)

        dispatcher.bind(handler)
        job = _ingestion_job()
        await dispatcher.dispatch(job)
        await dispatcher.drain()

        assert seen == [job.job_id]
        assert dispatcher.pending == 0

    async def test_failing_job_does_not_escape(self):
        dispatcher = InProcessJobDispatcher()
        dispatcher.bind(AsyncMock(side_effect=RuntimeError("boom")))

        await dispatcher.dispatch(_ingestion_job())
        await dispatcher.close()

        assert dispatcher.pending == 0

    async def test_unbound_dispatcher_raises(self):
        with pytest.raises(QueueError):
            await InProcessJobDispatcher().dispatch(_ingestion_job())


class TestRabbitMQDispatcher:
    """Test publishing jobs to RabbitMQ."""

    @staticmethod
    def _mock_connection():
        exchange = AsyncMock()
        channel = AsyncMock()
        channel.is_closed = False
        channel.declare_exchange.return_value = exchange
        connection = AsyncMock()
        connection.is_closed = False
        connection.channel.return_value = channel
        return connection, channel, exchange

    async def test_publish_persistent_json(self):
        connection, channel, exchange = self._mock_connection()
        job = _ingestion_job()

        with patch(
            "knowledge_ingestion.workers.job_dispatcher.aio_pika.connect_robust",
            AsyncMock(return_value=connection),
        ):
            dispatcher = RabbitMQJobDispatcher()
            await dispatcher.dispatch(job)

        exchange.publish.assert_awaited_once()
        message = exchange.publish.call_args.args[0]
        assert parse_job(message.body) == job
        assert message.message_id == job.job_id
        assert message.type == "ingest"

        await dispatcher.close()
        channel.close.assert_awaited_once()
        connection.close.assert_awaited_once()

    async def test_publish_failure_raises_queue_error(self):
        connection, _, exchange = self._mock_connection()
        exchange.publish.side_effect = ConnectionError("broker gone")

        with patch(
            "knowledge_ingestion.workers.job_dispatcher.aio_pika.connect_robust",
            AsyncMock(return_value=connection),
        ):
            with pytest.raises(QueueError) as exc_info:
                await RabbitMQJobDispatcher().dispatch(_ingestion_job())

        assert exc_info.value.details["job_type"] == "ingest"


class TestJobRunner:
    """Test job routing."""

    async def test_routes_by_job_type(self):
        ingestion = AsyncMock()
        deletion = AsyncMock()
        runner = JobRunner(ingestion, deletion)

        ingest_job = _ingestion_job()
        delete_job = DeletionJob(tenant_id=TENANT, namespace=TENANT, display_name="faq.txt")
        await runner.run(ingest_job)
        await runner.run(delete_job)

        ingestion.process.assert_awaited_once_with(ingest_job)
        deletion.run.assert_awaited_once_with(delete_job)

    async def test_unknown_job_raises(self):
        with pytest.raises(ValidationError):
            await JobRunner(AsyncMock(), AsyncMock()).run(MagicMock(job_id="x", job_type="other"))


class TestQueueConsumer:
    """Test message acknowledgement."""

    async def test_successful_job_is_acked(self):
        runner = AsyncMock()
        consumer = QueueConsumer(MagicMock(), runner)
        job = _ingestion_job()
        message = FakeMessage(job.model_dump_json().encode("utf-8"))

        await consumer.handle_message(message)

        runner.run.assert_awaited_once_with(job)
        assert message.acked
        assert not message.rejected

    async def test_invalid_body_is_rejected(self):
        runner = AsyncMock()
        consumer = QueueConsumer(MagicMock(), runner)
        message = FakeMessage(b"not json")

        with pytest.raises(PydanticValidationError):
            await consumer.handle_message(message)

        assert message.rejected
        runner.run.assert_not_awaited()

    async def test_failing_job_is_rejected(self):
        runner = AsyncMock()
        runner.run.side_effect = QueueError("downstream failure")
        consumer = QueueConsumer(MagicMock(), runner)
        message = FakeMessage(_ingestion_job().model_dump_json().encode("utf-8"))

        with pytest.raises(QueueError):
            await consumer.handle_message(message)

        assert message.rejected
        assert not message.acked

    async def test_start_consumes_declared_queue(self):
        queue = AsyncMock()
        queue.consume.return_value = "ctag-1"
        channel = AsyncMock()
        channel.is_closed = False
        channel.declare_queue.return_value = queue
        connection = AsyncMock()
        connection.channel.return_value = channel

        consumer = QueueConsumer(connection, AsyncMock())
        await consumer.start()

        assert consumer.is_running
        queue.consume.assert_awaited_once_with(consumer.handle_message)

        await consumer.stop()
        assert not consumer.is_running
        queue.cancel.assert_awaited_once_with("ctag-1")
        channel.close.assert_awaited_once()


class TestQueueTopology:
    """Test RabbitMQ topology declaration."""

    async def test_declares_main_and_dead_letter_routes(self):
        from knowledge_ingestion.config import settings

        channel = AsyncMock()
        exchange = await declare_topology(channel)

        assert channel.declare_exchange.await_count == 2
        assert channel.declare_queue.await_count == 2
        main_queue_call = channel.declare_queue.await_args_list[1]
        arguments = main_queue_call.kwargs["arguments"]
        assert arguments["x-dead-letter-exchange"] == settings.rabbitmq.dead_letter_exchange_name
        assert exchange is channel.declare_exchange.return_value

    async def test_setup_queues_closes_channel(self):
        channel = AsyncMock()
        connection = AsyncMock()
        connection.channel.return_value = channel

        await setup_queues(connection)

        channel.set_qos.assert_awaited_once()
        channel.close.assert_awaited_once()
