import asyncio
import logging
from typing import Optional
from uuid import uuid4

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractExchange, AbstractRobustChannel, AbstractRobustConnection

from app.schemas.events import GradeEvent, GradeEventType
from app.schemas.submission import Submission

logger = logging.getLogger(__name__)


class GradePublisher:
    """
    Pubblica gli eventi di voto (finalizzato, override, restituito) per il
    servizio notifiche. Messaggi persistenti con publisher confirms.
    """

    def __init__(
        self,
        rabbitmq_url: str,
        heartbeat: int,
        exchange: str = "clubs.grades",
        routing_key: str = "grades.events",
    ) -> None:
        self.rabbitmq_url = rabbitmq_url
        self.heartbeat = heartbeat
        self.exchange_name = exchange
        self.routing_key = routing_key

        self._conn: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractRobustChannel] = None
        self._exchange: Optional[AbstractExchange] = None
        self._lock = asyncio.Lock()

    async def _open_exchange(self) -> AbstractExchange:
        if self._conn is None or self._conn.is_closed:
            self._conn = await aio_pika.connect_robust(self.rabbitmq_url, heartbeat=self.heartbeat)
            self._channel = None
        if self._channel is None or self._channel.is_closed:
            self._channel = await self._conn.channel(publisher_confirms=True)
            self._exchange = None
        if self._exchange is None:
            self._exchange = await self._channel.declare_exchange(self.exchange_name, ExchangeType.DIRECT, durable=True)
        return self._exchange

    async def connect(self, max_retries: int = 5, delay: int = 3) -> None:
        for attempt in range(1, max_retries + 1):
            try:
                async with self._lock:
                    await self._open_exchange()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt == max_retries:
                    logger.error("Publisher voti: RabbitMQ non raggiungibile dopo %s tentativi", max_retries)
                    raise
                logger.warning("Publisher voti: connessione fallita (%s/%s): %s", attempt, max_retries, exc)
                await asyncio.sleep(delay)
            else:
                logger.info("Publisher voti pronto su exchange %s", self.exchange_name)
                return

    async def close(self) -> None:
        async with self._lock:
            try:
                if self._channel and not self._channel.is_closed:
                    await self._channel.close()
            finally:
                if self._conn and not self._conn.is_closed:
                    await self._conn.close()
                self._conn = self._channel = self._exchange = None

    async def publish_grade_event(self, submission: Submission, event_type: GradeEventType) -> None:
        event = GradeEvent.from_submission(submission, event_type)
        msg = Message(
            body=event.model_dump_json().encode("utf-8"),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=str(uuid4()),
            headers={"eventType": event_type},
        )
        async with self._lock:
            # riconnessione trasparente se il broker ha chiuso canale o connessione
            exchange = await self._open_exchange()
            await exchange.publish(msg, routing_key=self.routing_key, mandatory=True)
        logger.debug("Evento %s pubblicato (submission=%s)", event_type, submission.submissionId)


async def notify_grade(publisher: Optional[GradePublisher], submission: Submission, event_type: GradeEventType) -> None:
    """
    Notifica best-effort: il voto e' gia' persistito, un errore del broker
    viene loggato e non annulla la risposta.
    """
    if publisher is None:
        return
    try:
        await publisher.publish_grade_event(submission, event_type)
    except Exception:
        logger.exception("Evento %s non pubblicato per la submission %s", event_type, submission.submissionId)
