import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import aio_pika
from aio_pika import ExchangeType, IncomingMessage
from aio_pika.abc import AbstractChannel, AbstractQueue, AbstractRobustConnection
from pydantic import ValidationError as PayloadError

from app.core.errors import DomainError
from app.schemas.events import DeadlineEvent

logger = logging.getLogger(__name__)

DeadlineHandler = Callable[[DeadlineEvent], Awaitable[Any]]


class DeadlineConsumer:
    """
    Ascolta le scadenze degli assignment e per ciascuna avvia un round di
    allocazione tramite `handler`. Il consumer conosce solo l'handler:
    repository e servizi restano fuori.

    Ack solo dopo che l'handler ha completato; i messaggi illeggibili o
    rifiutati dal dominio non vengono mai rimessi in coda.
    """
    def __init__(
        self,
        handler: DeadlineHandler,
        rabbitmq_url: str,
        heartbeat: int = 30,
        exchange_name: str = "clubs.assignments",
        routing_key: str = "assignment.deadline",
        queue_name: str = "clubs.assignments.q.allocation",
        durable: bool = True,
        prefetch_count: int = 20,
        requeue_on_error: bool = False,
    ) -> None:
        self.handler = handler
        self.rabbitmq_url = rabbitmq_url
        self.heartbeat = heartbeat
        self.exchange_name = exchange_name
        self.routing_key = routing_key
        self.queue_name = queue_name
        self.durable = durable
        self.prefetch_count = prefetch_count
        self.requeue_on_error = requeue_on_error

        self._conn: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None

    async def _bind(self) -> None:
        self._conn = await aio_pika.connect_robust(self.rabbitmq_url, heartbeat=self.heartbeat)
        self._channel = await self._conn.channel()
        await self._channel.set_qos(prefetch_count=self.prefetch_count)

        exchange = await self._channel.declare_exchange(self.exchange_name, ExchangeType.DIRECT, durable=self.durable)
        self._queue = await self._channel.declare_queue(self.queue_name, durable=self.durable, auto_delete=False)
        await self._queue.bind(exchange, routing_key=self.routing_key)
        self._consumer_tag = await self._queue.consume(self._on_message, no_ack=False)

    async def start(self, max_retries: int = 10, delay: int = 5) -> None:
        for attempt in range(1, max_retries + 1):
            try:
                await self._bind()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt == max_retries:
                    logger.error("Consumer scadenze non avviato dopo %s tentativi", max_retries)
                    raise
                logger.warning("Avvio consumer fallito (%s/%s): %s", attempt, max_retries, exc)
                await asyncio.sleep(delay)
            else:
                logger.info(
                    "In ascolto su %s (%s rk=%s, prefetch=%s)",
                    self.queue_name, self.exchange_name, self.routing_key, self.prefetch_count,
                )
                return

    async def stop(self) -> None:
        if self._queue is not None and self._consumer_tag:
            try:
                await self._queue.cancel(self._consumer_tag)
            except Exception:
                logger.exception("Cancel del consumer fallito")
        for resource in (self._channel, self._conn):
            if resource is None or resource.is_closed:
                continue
            try:
                await resource.close()
            except Exception:
                logger.exception("Chiusura risorsa RabbitMQ fallita")
        self._conn = self._channel = self._queue = None
        self._consumer_tag = None

    def is_ready(self) -> bool:
        return bool(self._conn and not self._conn.is_closed and self._queue and self._consumer_tag)

    async def _on_message(self, message: IncomingMessage) -> None:
        mid = message.message_id or "(no-id)"
        try:
            event = DeadlineEvent.model_validate_json(message.body)
        except PayloadError as exc:
            logger.error("Scadenza %s scartata, payload non valido: %s", mid, exc.errors(include_url=False))
            await message.nack(requeue=False)
            return

        try:
            await self.handler(event)
        except (DomainError, PermissionError) as exc:
            logger.error("Scadenza %s rifiutata (assignment=%s): %s", mid, event.assignmentId, exc)
            await message.nack(requeue=False)
        except Exception:
            logger.exception("Errore gestione scadenza %s (assignment=%s)", mid, event.assignmentId)
            await message.nack(requeue=self.requeue_on_error)
        else:
            await message.ack()
            logger.info("Scadenza %s gestita (assignment=%s)", mid, event.assignmentId)
