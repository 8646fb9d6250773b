"""
Tests del coordinador de batches con store en memoria y scheduler real
(ventana corta).
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from zotsync.application.dto.video_dto import VideoRecord
from zotsync.application.services.broadcast_dispatcher import BroadcastDispatcher
from zotsync.application.use_cases.batch_coordinator import BatchCoordinator
from zotsync.infrastructure.batch.scheduler import QuiescenceScheduler
from zotsync.infrastructure.batch.store import InMemoryBatchStore
from zotsync.shared.constants.sync_constants import BroadcastChannel, SyncOperation
from zotsync.shared.exceptions.domain import NothingSyncedException, ValidationException


@pytest.fixture
def discord():
    return AsyncMock()


@pytest.fixture
def coordinator(make_pipeline, discord):
    pipeline = make_pipeline(dispatcher=BroadcastDispatcher({BroadcastChannel.DISCORD: discord}))
    store = InMemoryBatchStore()
    scheduler = QuiescenceScheduler(store, 0.2, lambda op, batch: pipeline.run(batch, op))
    coordinator = BatchCoordinator(store=store, pipeline=pipeline, scheduler=scheduler)
    return coordinator


def _records(video_payload, *ns, **overrides):
    return [VideoRecord.model_validate(video_payload(n, **overrides)) for n in ns]


@pytest.mark.asyncio
async def test_single_create_is_processed_immediately(coordinator, fake_zotero, discord, video_payload):
    result = await coordinator.submit(SyncOperation.CREATE, _records(video_payload, 1))

    assert result.status_code == 200
    assert result.items == [{"id": "rec00000000000001", "zoteroKey": "KEY1", "zoteroVersion": 1}]
    assert len(fake_zotero.post_calls) == 1
    discord.assert_awaited_once()
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_declared_create_batch_runs_when_complete(coordinator, fake_zotero, discord, video_payload):
    first = await coordinator.submit(SyncOperation.CREATE, _records(video_payload, 1), batch_size=3)
    second = await coordinator.submit(SyncOperation.CREATE, _records(video_payload, 2), batch_size=3)

    assert (first.status_code, second.status_code) == (202, 202)
    assert len(second.batch) == 2
    assert fake_zotero.post_calls == []

    third = await coordinator.submit(SyncOperation.CREATE, _records(video_payload, 3), batch_size=3)

    assert third.status_code == 200
    assert [len(c) for c in fake_zotero.post_calls] == [3]
    assert len(third.items) == 3
    assert await coordinator.store.size(SyncOperation.CREATE) == 0
    # Un solo anuncio para todo el batch
    discord.assert_awaited_once()
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_updates_are_coalesced_into_one_run(coordinator, fake_zotero, fake_airtable, discord, video_payload):
    for n in range(5):
        result = await coordinator.submit(
            SyncOperation.UPDATE, _records(video_payload, n, zoteroKey=f"KEY{n}", zoteroVersion=1)
        )
        assert result.status_code == 202
        await asyncio.sleep(0.05)

    assert fake_zotero.post_calls == []
    await asyncio.sleep(0.4)

    assert [len(c) for c in fake_zotero.post_calls] == [5]
    assert sum(len(c["items"]) for c in fake_airtable.update_calls) == 5
    discord.assert_not_awaited()
    assert await coordinator.store.size(SyncOperation.UPDATE) == 0
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_nothing_synced_raises_404(coordinator, fake_zotero, video_payload):
    fake_zotero.classify = lambda i, item: "failed"

    with pytest.raises(NothingSyncedException) as exc:
        await coordinator.submit(SyncOperation.CREATE, _records(video_payload, 1))
    assert exc.value.status_code == 404
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_delete_is_immediate(coordinator, fake_zotero, video_payload):
    result = await coordinator.submit(SyncOperation.DELETE, _records(video_payload, 1, zoteroKey="ABCD1234"))

    assert result.status_code == 200
    assert result.items == [{"zoteroKey": "ABCD1234"}]
    assert fake_zotero.deleted == [["ABCD1234"]]
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_delete_without_keys_raises(coordinator, video_payload):
    with pytest.raises(NothingSyncedException):
        await coordinator.submit(SyncOperation.DELETE, _records(video_payload, 1))
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_rejects_empty_body_and_bad_batch_size(coordinator, video_payload):
    with pytest.raises(ValidationException):
        await coordinator.submit(SyncOperation.CREATE, [])
    with pytest.raises(ValidationException):
        await coordinator.submit(SyncOperation.CREATE, _records(video_payload, 1), batch_size=0)
    assert await coordinator.store.size(SyncOperation.CREATE) == 0
    await coordinator.scheduler.stop()
