"""
Flux de changements temps réel du store distant via Redis Pub/Sub.

Chaque table est diffusée sur un canal "{prefix}{table}" (par défaut
"realtime:public:households"). Le message est un JSON de la forme:

    {"type": "INSERT", "table": "households", "record": {...}, "old_record": null}

Le flux s'abonne paresseusement au premier handler d'une table et se
désabonne du canal lorsque le dernier handler est retiré. Pas de
persistance garantie: un message publié sans abonné est perdu.
"""

import asyncio
import json
import logging

import redis.asyncio as redis
from opentelemetry import trace

from ministry_data.canonical.entities import TABLE_SPECS
from ministry_data.core.config import settings
from ministry_data.schemas.changes import ChangeHandler, TableChange, Unsubscribe

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RedisChangeStream:
    """
    Consommateur Redis Pub/Sub des changements de tables distantes.

    Example:
        ```python
        stream = RedisChangeStream()

        async def on_child(change: TableChange):
            print(change.event, change.record_id)

        unsubscribe = await stream.subscribe("children", on_child)
        unsubscribe()
        await stream.close()
        ```
    """

    def __init__(
        self,
        redis_url: str | None = None,
        db: int | None = None,
        channel_prefix: str | None = None,
        client: redis.Redis | None = None,
    ):
        self.redis_url = redis_url or settings.REDIS_URL
        self.db = settings.REDIS_DB if db is None else db
        self.channel_prefix = (
            settings.REALTIME_CHANNEL_PREFIX if channel_prefix is None else channel_prefix
        )
        self.handlers: dict[str, list[ChangeHandler]] = {}
        self._client = client
        self._pubsub = None
        self._consumer_task: asyncio.Task | None = None
        self._leaving: dict[str, asyncio.Task] = {}

    def channel(self, table: str) -> str:
        return f"{self.channel_prefix}{table}"

    async def _get_client(self) -> redis.Redis:
        """Crée le client Redis au premier usage."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                db=self.db,
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
            await self._client.ping()
            logger.info(f"Redis client initialisé: {self.redis_url}")
        return self._client

    async def subscribe(self, table: str, handler: ChangeHandler) -> Unsubscribe:
        """
        Enregistre un handler pour les changements d'une table.

        Args:
            table: Nom de la table (ex: "children")
            handler: Coroutine appelée avec un TableChange

        Returns:
            Fonction de désabonnement synchrone et idempotente
        """
        channel = self.channel(table)
        if self._pubsub is None:
            client = await self._get_client()
            self._pubsub = client.pubsub()

        listeners = self.handlers.setdefault(channel, [])
        leaving = self._leaving.get(channel)
        if leaving is not None:
            # Le UNSUBSCRIBE en attente doit passer avant le nouveau SUBSCRIBE
            await asyncio.gather(leaving, return_exceptions=True)
        if not listeners:
            await self._pubsub.subscribe(channel)
            logger.info(f"Abonné au canal Redis: {channel}")
        listeners.append(handler)

        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(
                self.consume_messages(), name="redis_change_consumer"
            )

        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            remaining = self.handlers.get(channel, [])
            if handler in remaining:
                remaining.remove(handler)
            if not remaining:
                self.handlers.pop(channel, None)
                self._schedule_unsubscribe(channel)

        return unsubscribe

    def _schedule_unsubscribe(self, channel: str) -> None:
        if self._pubsub is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Pas de boucle active, désabonnement différé de {channel}")
            return
        task = loop.create_task(self._leave_channel(channel))
        self._leaving[channel] = task
        task.add_done_callback(lambda done: self._forget_leaving(channel, done))

    def _forget_leaving(self, channel: str, task: asyncio.Task) -> None:
        if self._leaving.get(channel) is task:
            del self._leaving[channel]

    async def _leave_channel(self, channel: str) -> None:
        """Désabonne le canal, sauf si un handler s'y est réabonné entre-temps."""
        if channel in self.handlers or self._pubsub is None:
            return
        await self._pubsub.unsubscribe(channel)
        logger.info(f"Désabonné du canal Redis: {channel}")

    def to_change(self, channel: str, payload: dict) -> TableChange:
        """Convertit un message du flux en TableChange."""
        if not isinstance(payload, dict):
            raise ValueError(f"Payload de changement inattendu: {payload!r}")
        table = payload.get("table") or channel.removeprefix(self.channel_prefix)
        record = payload.get("record") or payload.get("new") or None
        old_record = payload.get("old_record") or payload.get("old") or None
        record_id = None
        spec = TABLE_SPECS.get(table)
        if spec is not None:
            record_id = (record or {}).get(spec.id_field) or (old_record or {}).get(spec.id_field)
        return TableChange(
            table=table,
            event=payload.get("type") or payload.get("eventType"),
            record_id=record_id,
            record=record,
            old_record=old_record,
        )

    async def dispatch(self, channel: str, change: TableChange) -> None:
        """Exécute les handlers d'un canal; l'échec d'un handler n'affecte pas les autres."""
        with tracer.start_as_current_span(
            f"consume.{change.table}",
            kind=trace.SpanKind.CONSUMER,
            attributes={"messaging.system": "redis", "messaging.destination": channel},
        ) as span:
            handlers_executed = 0
            handlers_failed = 0
            for handler in list(self.handlers.get(channel, [])):
                try:
                    await handler(change)
                    handlers_executed += 1
                except Exception as e:
                    handlers_failed += 1
                    logger.error(
                        f"Erreur handler '{getattr(handler, '__name__', handler)}' pour '{channel}': {e}",
                        exc_info=True,
                    )
                    span.record_exception(e)
            span.set_attributes(
                {"handlers.executed": handlers_executed, "handlers.failed": handlers_failed}
            )

    async def consume_messages(self) -> None:
        """Boucle de consommation Redis Pub/Sub (s'arrête quand plus aucun canal n'est suivi)."""
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                channel = message["channel"]
                try:
                    payload = json.loads(message["data"])
                    change = self.to_change(channel, payload)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.error(f"Message de changement invalide sur '{channel}': {e}")
                    continue
                await self.dispatch(channel, change)
        except asyncio.CancelledError:
            logger.info("Consommation Redis annulée")

    async def close(self) -> None:
        """Arrête la consommation et ferme les connexions Redis."""
        if self._consumer_task and not self._consumer_task.done():
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
        if self._pubsub is not None:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self.handlers.clear()
        logger.info("Flux de changements Redis arrêté")
