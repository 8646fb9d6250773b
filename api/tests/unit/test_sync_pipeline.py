"""
Tests del pipeline de sincronización sobre los dobles de Zotero y Airtable.
"""
from unittest.mock import AsyncMock

import pytest

from zotsync.application.services.broadcast_dispatcher import BroadcastDispatcher
from zotsync.shared.constants.sync_constants import (
    BroadcastAction,
    BroadcastChannel,
    DeliveryStatus,
    SyncOperation,
)
from zotsync.shared.exceptions.sync import DownstreamWriteException, ReconciliationException
from zotsync.infrastructure.external.zotero.zotero_client import ZoteroWriteResponse


def _dispatcher():
    discord = AsyncMock()
    telegram = AsyncMock()
    dispatcher = BroadcastDispatcher({
        BroadcastChannel.DISCORD: discord,
        BroadcastChannel.TELEGRAM: telegram,
    })
    return dispatcher, discord, telegram


@pytest.mark.asyncio
async def test_partial_success_is_a_normal_outcome(make_pipeline, fake_zotero, fake_airtable, failure_entries, video_payload):
    outcomes = ["successful", "successful", "unchanged", "failed"]
    fake_zotero.classify = lambda i, item: outcomes[i]
    dispatcher, discord, telegram = _dispatcher()
    pipeline = make_pipeline(dispatcher=dispatcher)

    report = await pipeline.run([video_payload(n) for n in range(4)], SyncOperation.CREATE)

    assert len(report.successful) == 2
    assert report.unchanged == ["rec00000000000002"]
    assert [f.upstream_id for f in report.failed] == ["rec00000000000003"]
    assert [r.upstream_id for r in report.reconciled] == ["rec00000000000000", "rec00000000000001"]

    # Una difusión por canal, variante de varios items
    assert [(b.channel, b.action, b.status) for b in report.broadcasts] == [
        (BroadcastChannel.DISCORD, BroadcastAction.NEW_ITEMS, DeliveryStatus.DELIVERED),
        (BroadcastChannel.TELEGRAM, BroadcastAction.NEW_ITEMS, DeliveryStatus.DELIVERED),
    ]
    discord.assert_awaited_once()
    telegram.assert_awaited_once()

    assert len(fake_airtable.update_calls) == 1
    assert fake_airtable.update_calls[0]["table"] == "Videos"
    assert fake_airtable.update_calls[0]["items"][0]["fields"] == {"Zotero Key": "KEY1", "Zotero Version": 1}

    entries = failure_entries()
    assert len(entries) == 1
    assert entries[0]["stage"] == "write"
    assert entries[0]["item"]["title"] == "Video 3"


@pytest.mark.asyncio
async def test_update_does_not_broadcast(make_pipeline, video_payload):
    dispatcher, discord, telegram = _dispatcher()
    pipeline = make_pipeline(dispatcher=dispatcher)

    report = await pipeline.run(
        [video_payload(1, zoteroKey="ABCD1234", zoteroVersion=3)], SyncOperation.UPDATE
    )

    assert report.broadcasts == []
    discord.assert_not_awaited()
    assert report.reconciled[0].downstream_version == 4


@pytest.mark.asyncio
async def test_matching_key_and_version_is_not_rewritten(make_pipeline, fake_zotero, fake_airtable, video_payload):
    def post_items(items):
        response = ZoteroWriteResponse()
        for i, item in enumerate(items):
            response.successful[i] = {"key": item["key"], "version": item["version"], "data": item}
        return response

    fake_zotero.post_items = post_items
    pipeline = make_pipeline()

    report = await pipeline.run(
        [video_payload(1, zoteroKey="ABCD1234", zoteroVersion=7)], SyncOperation.UPDATE
    )

    assert fake_airtable.update_calls == []
    assert report.reconciled == []
    assert [r.upstream_id for r in report.reconciliation_unchanged] == ["rec00000000000001"]
    assert report.to_dict()["reconciled"] == [
        {"id": "rec00000000000001", "zoteroKey": "ABCD1234", "zoteroVersion": 7}
    ]


@pytest.mark.asyncio
async def test_series_collection_created_once_and_written_back(make_pipeline, fake_zotero, fake_airtable, video_payload):
    pipeline = make_pipeline()
    records = [
        video_payload(n, series=["Deep Time"], seriesId=["recSERIES00000001"]) for n in range(3)
    ]

    report = await pipeline.run(records, SyncOperation.CREATE)

    assert len(fake_zotero.collections) == 1
    assert fake_zotero.collections[0]["parent"] == "PARENT"
    assert all(item["collections"] == ["PARENT", "COL1"] for item in fake_zotero.post_calls[0])
    series_updates = [c for c in fake_airtable.update_calls if c["table"] == "Series"]
    assert series_updates[0]["items"] == [{"id": "recSERIES00000001", "fields": {"Zotero Key": "COL1"}}]
    assert len(report.collections_created) == 1


@pytest.mark.asyncio
async def test_chunks_respect_write_limits(make_pipeline, fake_zotero, fake_airtable, video_payload):
    pipeline = make_pipeline(zotero_chunk=50, airtable_chunk=10)

    report = await pipeline.run([video_payload(n) for n in range(123)], SyncOperation.CREATE)

    assert [len(c) for c in fake_zotero.post_calls] == [50, 50, 23]
    assert all(len(c["items"]) <= 10 for c in fake_airtable.update_calls)
    assert len(report.reconciled) == 123


@pytest.mark.asyncio
async def test_reconciliation_failure_raises(make_pipeline, fake_airtable, failure_entries, video_payload):
    fake_airtable.fail_updates = True
    pipeline = make_pipeline()

    with pytest.raises(ReconciliationException) as exc:
        await pipeline.run([video_payload(1), video_payload(2)], SyncOperation.CREATE)

    assert exc.value.status_code == 404
    assert [e["stage"] for e in failure_entries()] == ["reconcile", "reconcile"]


@pytest.mark.asyncio
async def test_sink_receives_report_even_without_successes(make_pipeline, fake_zotero, video_payload):
    fake_zotero.classify = lambda i, item: "failed"
    received = []
    pipeline = make_pipeline()

    report = await pipeline.run([video_payload(1)], SyncOperation.CREATE, sink=received.append)

    assert received == [report]
    assert report.successful == []
    assert len(report.failed) == 1


@pytest.mark.asyncio
async def test_invalid_record_goes_to_failure_log(make_pipeline, failure_entries, video_payload):
    pipeline = make_pipeline()

    report = await pipeline.run([{"title": "sin id"}, video_payload(1)], SyncOperation.CREATE)

    assert len(report.successful) == 1
    assert failure_entries()[0]["stage"] == "transform"


@pytest.mark.asyncio
async def test_template_failure_aborts_run(make_pipeline, fake_zotero, failure_entries, video_payload):
    def broken_template(item_type):
        raise RuntimeError("Zotero 503")

    fake_zotero.get_template = broken_template
    pipeline = make_pipeline()

    with pytest.raises(DownstreamWriteException):
        await pipeline.run([video_payload(1)], SyncOperation.CREATE)
    assert failure_entries()[0]["stage"] == "template"


@pytest.mark.asyncio
async def test_delete_sends_only_keyed_records(make_pipeline, fake_zotero, video_payload):
    pipeline = make_pipeline()

    deleted = await pipeline.delete([video_payload(1, zoteroKey="ABCD1234"), video_payload(2)])

    assert deleted == ["ABCD1234"]
    assert fake_zotero.deleted == [["ABCD1234"]]
