"""
Tests de los endpoints de webhooks con el coordinador inyectado vía
dependency_overrides (sin Redis ni APIs externas).
"""
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from zotsync.api.v1.dependencies.sync_deps import get_batch_coordinator
from zotsync.application.services.broadcast_dispatcher import BroadcastDispatcher
from zotsync.application.use_cases.batch_coordinator import BatchCoordinator
from zotsync.infrastructure.batch.scheduler import QuiescenceScheduler
from zotsync.infrastructure.batch.store import InMemoryBatchStore
from zotsync.shared.constants.sync_constants import BroadcastChannel


@pytest.fixture
def discord():
    return AsyncMock()


@pytest.fixture
def coordinator(make_pipeline, discord):
    pipeline = make_pipeline(dispatcher=BroadcastDispatcher({BroadcastChannel.DISCORD: discord}))
    store = InMemoryBatchStore()
    scheduler = QuiescenceScheduler(store, 0.2, lambda op, batch: pipeline.run(batch, op))
    return BatchCoordinator(store=store, pipeline=pipeline, scheduler=scheduler)


@pytest.fixture
def app_with_coordinator(coordinator):
    """App FastAPI con el coordinador en memoria."""
    from main import create_application
    app = create_application()
    app.dependency_overrides[get_batch_coordinator] = lambda: coordinator
    yield app
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_create_single_record(app_with_coordinator, coordinator, discord, video_payload) -> None:
    transport = ASGITransport(app=app_with_coordinator)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/v1/zotero/create", json=video_payload(1))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "processed"
    assert body["items"] == [{"id": "rec00000000000001", "zoteroKey": "KEY1", "zoteroVersion": 1}]
    assert body["report"]["broadcasts"][0]["status"] == "delivered"
    discord.assert_awaited_once()
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_update_is_accepted(app_with_coordinator, coordinator, video_payload) -> None:
    transport = ASGITransport(app=app_with_coordinator)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/v1/zotero/update",
            json=[video_payload(1, zoteroKey="AAAA", zoteroVersion=1), video_payload(2)],
        )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "accepted"
    assert body["batch_size"] == 2
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_create_batch_waits_for_declared_size(app_with_coordinator, coordinator, video_payload) -> None:
    transport = ASGITransport(app=app_with_coordinator)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.post("/api/v1/zotero/create?batch_size=2", json=video_payload(1))
        second = await client.post("/api/v1/zotero/create?batch_size=2", json=video_payload(2))

    assert first.status_code == 202
    assert second.status_code == 200
    assert len(second.json()["items"]) == 2
    await coordinator.scheduler.stop()


@pytest.mark.asyncio
async def test_malformed_payload_returns_400(app_with_coordinator, coordinator) -> None:
    transport = ASGITransport(app=app_with_coordinator)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/v1/zotero/create", json={"title": "sin recordId"})

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert response.json()["message"] == "Payload de webhook inválido"
    assert await coordinator.store.size("create") == 0


@pytest.mark.asyncio
async def test_nothing_synced_returns_404(app_with_coordinator, coordinator, fake_zotero, video_payload) -> None:
    fake_zotero.classify = lambda i, item: "failed"
    transport = ASGITransport(app=app_with_coordinator)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/v1/zotero/create", json=video_payload(1))

    assert response.status_code == 404
    assert response.json()["error"] == "NOTHING_SYNCED"


@pytest.mark.asyncio
async def test_invalid_token_returns_401(app_with_coordinator, video_payload) -> None:
    transport = ASGITransport(app=app_with_coordinator)
    with patch("zotsync.api.v1.dependencies.sync_deps.settings.WEBHOOK_TOKEN", "secreto"):
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            denied = await client.post("/api/v1/zotero/create", json=video_payload(1), headers={"X-Webhook-Token": "otro"})
            missing = await client.post("/api/v1/zotero/create", json=video_payload(1))

    assert denied.status_code == 401
    assert denied.json()["message"] == "Token de webhook inválido"
    assert missing.status_code == 401
