"""Declare the RabbitMQ topology for background jobs.

Exchange `knowledge-ingestion-exchange` (direct) routes job messages to the
durable queue `knowledge-ingestion-jobs`. Messages rejected by a consumer go
through `{exchange}-dlx` to `knowledge-ingestion-dlq`.
"""

from typing import Any, Dict

import aio_pika
from aio_pika import ExchangeType
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("queue_setup")
settings = get_settings()


async def declare_topology(channel: AbstractChannel) -> AbstractExchange:
    """Declare exchanges and queues on `channel`; returns the main exchange."""
    rabbit = settings.rabbitmq
    dlx_name = rabbit.dead_letter_exchange_name

    dlx = await channel.declare_exchange(name=dlx_name, type=ExchangeType.DIRECT, durable=True)
    dlq = await channel.declare_queue(name=rabbit.dead_letter_queue_name, durable=rabbit.queue_durable)
    await dlq.bind(dlx, routing_key=rabbit.routing_key)

    exchange = await channel.declare_exchange(
        name=rabbit.exchange_name, type=ExchangeType.DIRECT, durable=True
    )

    arguments: Dict[str, Any] = {
        "x-dead-letter-exchange": dlx_name,
        "x-dead-letter-routing-key": rabbit.routing_key,
    }
    if rabbit.message_ttl:
        arguments["x-message-ttl"] = rabbit.message_ttl

    queue = await channel.declare_queue(
        name=rabbit.queue_name,
        durable=rabbit.queue_durable,
        arguments=arguments,
    )
    await queue.bind(exchange, routing_key=rabbit.routing_key)

    logger.info(
        f"RabbitMQ topology ready: exchange={rabbit.exchange_name}, queue={rabbit.queue_name}, "
        f"dlx={dlx_name}, dlq={rabbit.dead_letter_queue_name}"
    )
    return exchange


async def setup_queues(connection: AbstractConnection) -> None:
    """Open a channel and declare the job topology."""
    try:
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=settings.rabbitmq.prefetch_count)
        await declare_topology(channel)
        await channel.close()
    except Exception as e:
        logger.error(f"Failed to set up RabbitMQ queues: {e}", exc_info=True)
        raise


async def verify_queues(connection: AbstractConnection) -> Dict[str, Any]:
    """Passive declarations reporting which queues exist and their depth."""
    rabbit = settings.rabbitmq
    status: Dict[str, Any] = {}

    for label, name in (
        ("main_queue", rabbit.queue_name),
        ("dead_letter_queue", rabbit.dead_letter_queue_name),
    ):
        # A failed passive declare closes the channel, so use one per check
        channel = await connection.channel()
        try:
            queue = await channel.declare_queue(name=name, passive=True)
            status[label] = {
                "exists": True,
                "name": name,
                "message_count": queue.declaration_result.message_count,
            }
        except aio_pika.exceptions.ChannelClosed:
            status[label] = {"exists": False, "name": name, "message_count": None}
        finally:
            if not channel.is_closed:
                await channel.close()

    return status
