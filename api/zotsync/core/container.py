"""
Contenedor de servicios de la aplicación.

Se construye una vez en el startup (ver core/events.py) y queda en
app.state.container. Los endpoints lo obtienen vía dependencias, que los
tests reemplazan con app.dependency_overrides.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger
from redis import asyncio as redis_asyncio

from zotsync.application.services.broadcast_dispatcher import BroadcastDispatcher, load_topic_metadata
from zotsync.application.services.item_transformer import ItemTransformer
from zotsync.application.use_cases.batch_coordinator import BatchCoordinator
from zotsync.application.use_cases.resync_use_case import ResyncUseCase
from zotsync.application.use_cases.sync_pipeline import SyncPipeline
from zotsync.core.config import Settings
from zotsync.infrastructure.batch.scheduler import QuiescenceScheduler
from zotsync.infrastructure.batch.store import BatchStore, InMemoryBatchStore, RedisBatchStore
from zotsync.infrastructure.external.airtable.airtable_client import AirtableClient, AirtableCredentials
from zotsync.infrastructure.external.discord.discord_client import DiscordWebhookClient
from zotsync.infrastructure.external.telegram.telegram_client import TelegramClient
from zotsync.infrastructure.external.twitter.twitter_client import TwitterClient
from zotsync.infrastructure.external.throttling import ChunkedWriter, RateLimiter
from zotsync.infrastructure.external.zotero.zotero_client import ZoteroClient, ZoteroCredentials
from zotsync.shared.constants.sync_constants import (
    AIRTABLE_MAX_WRITE,
    ZOTERO_MAX_WRITE,
    BroadcastAction,
    BroadcastChannel,
)
from zotsync.shared.utils.failure_log import FailureLog


@dataclass
class ServiceContainer:
    store: BatchStore
    scheduler: QuiescenceScheduler
    pipeline: SyncPipeline
    coordinator: BatchCoordinator
    resync: ResyncUseCase
    failure_log: FailureLog
    redis: Optional[Any] = None

    async def close(self) -> None:
        await self.scheduler.stop()
        if self.redis is not None:
            await self.redis.aclose()
            logger.info("Conexion a Redis cerrada")
        self.failure_log.close()


def build_store(settings: Settings) -> tuple[BatchStore, Optional[Any]]:
    """Elige el backend de batches según BATCH_BACKEND."""
    backend = settings.BATCH_BACKEND.lower()
    if backend == "memory":
        logger.warning("BATCH_BACKEND=memory: el batch no se comparte entre procesos")
        return InMemoryBatchStore(), None
    if backend != "redis":
        raise ValueError(f"BATCH_BACKEND inválido: {settings.BATCH_BACKEND}")
    client = redis_asyncio.from_url(settings.REDIS_URL, decode_responses=True)
    return RedisBatchStore(client, key_prefix=settings.BATCH_KEY_PREFIX), client


def build_dispatcher(settings: Settings) -> Optional[BroadcastDispatcher]:
    """Registra solo los canales configurados."""
    if not settings.BROADCAST_ENABLED:
        return None

    senders = {}
    discord = DiscordWebhookClient({
        BroadcastAction.NEW_ITEM: settings.DISCORD_WEBHOOK_NEW_ITEM,
        BroadcastAction.NEW_ITEMS: settings.DISCORD_WEBHOOK_NEW_ITEMS,
    })
    if discord.configured:
        senders[BroadcastChannel.DISCORD] = discord.send

    telegram = TelegramClient(settings.TELEGRAM_BOT_TOKEN, settings.TELEGRAM_CHAT_ID)
    if telegram.configured:
        async def send_telegram(action, message):
            return await telegram.send(message)
        senders[BroadcastChannel.TELEGRAM] = send_telegram

    twitter = TwitterClient(settings.TWITTER_ACCESS_TOKEN)
    if twitter.configured:
        async def send_twitter(action, message):
            return await twitter.send(message)
        senders[BroadcastChannel.TWITTER] = send_twitter

    if not senders:
        logger.warning("Difusión habilitada pero sin canales configurados")
    return BroadcastDispatcher(senders, topics=load_topic_metadata(settings.TOPIC_METADATA_FILE))


def build_container(settings: Settings) -> ServiceContainer:
    store, redis_client = build_store(settings)

    zotero = ZoteroClient(ZoteroCredentials(settings.ZOTERO_API_KEY, settings.ZOTERO_USER))
    airtable = AirtableClient(AirtableCredentials(settings.AIRTABLE_TOKEN, settings.AIRTABLE_BASE_ID))

    zotero_limiter = RateLimiter(settings.ZOTERO_MIN_INTERVAL_S, name="zotero")
    airtable_limiter = RateLimiter(settings.AIRTABLE_MIN_INTERVAL_S, name="airtable")
    zotero_writer = ChunkedWriter(
        zotero_limiter,
        min(settings.ZOTERO_CHUNK_SIZE, ZOTERO_MAX_WRITE),
        chunk_delay_s=settings.ZOTERO_CHUNK_DELAY_S,
    )
    airtable_writer = ChunkedWriter(
        airtable_limiter,
        min(settings.AIRTABLE_CHUNK_SIZE, AIRTABLE_MAX_WRITE),
        chunk_delay_s=settings.AIRTABLE_CHUNK_DELAY_S,
    )

    async def create_collection(name: str) -> str:
        return await zotero_limiter.run(zotero.create_collection, name, settings.ZOTERO_PARENT_COLLECTION)

    transformer = ItemTransformer(
        item_type=settings.ZOTERO_ITEM_TYPE,
        parent_collection=settings.ZOTERO_PARENT_COLLECTION,
        archive_name=settings.ZOTERO_ARCHIVE_NAME,
        record_url=settings.AIRTABLE_RECORD_URL,
        create_collection=create_collection,
    )

    failure_log = FailureLog(settings.FAILURE_LOG_FILE)
    pipeline = SyncPipeline(
        zotero=zotero,
        airtable=airtable,
        transformer=transformer,
        zotero_writer=zotero_writer,
        airtable_writer=airtable_writer,
        failure_log=failure_log,
        dispatcher=build_dispatcher(settings),
        item_type=settings.ZOTERO_ITEM_TYPE,
        videos_table=settings.AIRTABLE_VIDEOS_TABLE,
        series_table=settings.AIRTABLE_SERIES_TABLE,
    )

    scheduler = QuiescenceScheduler(
        store,
        settings.BATCH_QUIESCENCE_SECONDS,
        on_fire=lambda op, batch: pipeline.run(batch, op),
    )

    return ServiceContainer(
        store=store,
        scheduler=scheduler,
        pipeline=pipeline,
        coordinator=BatchCoordinator(store=store, pipeline=pipeline, scheduler=scheduler),
        resync=ResyncUseCase(
            airtable=airtable,
            airtable_limiter=airtable_limiter,
            pipeline=pipeline,
            videos_table=settings.AIRTABLE_VIDEOS_TABLE,
            last_modified_field=settings.AIRTABLE_LAST_MOD_FIELD,
        ),
        failure_log=failure_log,
        redis=redis_client,
    )
