"""
Configuración de fixtures para pytest.

Provee dobles en memoria de Zotero y Airtable (síncronos, como los clientes
reales) y una fabrica de pipelines sin esperas de rate limit.
"""
import itertools
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from zotsync.application.services.item_transformer import ItemTransformer
from zotsync.application.use_cases.sync_pipeline import SyncPipeline
from zotsync.infrastructure.external.throttling import ChunkedWriter, RateLimiter
from zotsync.infrastructure.external.zotero.zotero_client import ZoteroWriteResponse
from zotsync.shared.utils.failure_log import FailureLog

RECORD_URL = "https://airtable.com/tblTEST/viwTEST/"


class FakeZotero:
    """Biblioteca Zotero en memoria."""

    def __init__(self):
        self.template = {"itemType": "videoRecording", "title": "", "creators": [], "tags": [], "collections": []}
        self.post_calls: List[List[Dict[str, Any]]] = []
        self.collections: List[Dict[str, Any]] = []
        self.deleted: List[List[str]] = []
        self._keys = itertools.count(1)
        # (índice, item) -> "successful" | "unchanged" | "failed"
        self.classify: Optional[Callable[[int, Dict[str, Any]], str]] = None

    def get_template(self, item_type: str) -> Dict[str, Any]:
        return dict(self.template)

    def post_items(self, items: List[Dict[str, Any]]) -> ZoteroWriteResponse:
        self.post_calls.append(list(items))
        response = ZoteroWriteResponse()
        for i, item in enumerate(items):
            outcome = self.classify(i, item) if self.classify else "successful"
            if outcome == "unchanged":
                response.unchanged[i] = item.get("key", f"KEY{next(self._keys)}")
            elif outcome == "failed":
                response.failed[i] = {"code": 400, "message": "invalid item"}
            else:
                key = item.get("key") or f"KEY{next(self._keys)}"
                version = (item.get("version") or 0) + 1
                response.successful[i] = {"key": key, "version": version, "data": {**item, "key": key, "version": version}}
        return response

    def create_collection(self, name: str, parent: Optional[str] = None) -> str:
        key = f"COL{len(self.collections) + 1}"
        self.collections.append({"name": name, "parent": parent, "key": key})
        return key

    def delete_items(self, keys: List[str], version: Optional[int] = None) -> List[str]:
        self.deleted.append(list(keys))
        return list(keys)


class FakeAirtable:
    """Tabla Airtable en memoria: solo registra los updates."""

    def __init__(self):
        self.update_calls: List[Dict[str, Any]] = []
        self.fail_updates = False

    def update(self, items: List[Dict[str, Any]], table: str) -> List[Dict[str, Any]]:
        if self.fail_updates:
            raise RuntimeError("Airtable 503")
        self.update_calls.append({"table": table, "items": list(items)})
        return list(items)


def _video_payload(n: int, **overrides: Any) -> Dict[str, Any]:
    """Payload de webhook mínimo para el registro n."""
    payload = {
        "recordId": f"rec{n:014d}",
        "title": f"Video {n}",
        "url": f"https://example.org/video/{n}",
        "year": 2021,
        "runningTime": 2722,
        "topic": "The Anthropocene",
        "presentersFirstName": ["Ada"],
        "presentersLastName": ["Lovelace"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def video_payload():
    return _video_payload


@pytest.fixture
def fake_zotero() -> FakeZotero:
    return FakeZotero()


@pytest.fixture
def fake_airtable() -> FakeAirtable:
    return FakeAirtable()


@pytest.fixture
def failure_log(tmp_path):
    log = FailureLog(tmp_path / "failed.jsonl")
    yield log
    log.close()


@pytest.fixture
def failure_entries(failure_log):
    """Lee las líneas JSON escritas en el archivo de fallos."""

    def _read() -> List[Dict[str, Any]]:
        if not failure_log.path.exists():
            return []
        text = failure_log.path.read_text(encoding="utf-8")
        return [json.loads(line) for line in text.splitlines() if line.strip()]

    return _read


@pytest.fixture
def make_pipeline(fake_zotero, fake_airtable, failure_log):
    """Fabrica de SyncPipeline sobre los dobles, sin esperas."""

    def _make(dispatcher=None, zotero_chunk: int = 50, airtable_chunk: int = 10) -> SyncPipeline:
        zotero_limiter = RateLimiter(0, name="zotero")
        airtable_limiter = RateLimiter(0, name="airtable")

        async def create_collection(name: str) -> str:
            return await zotero_limiter.run(fake_zotero.create_collection, name, "PARENT")

        transformer = ItemTransformer(
            item_type="videoRecording",
            parent_collection="PARENT",
            archive_name="Earth Science Online Video Database",
            record_url=RECORD_URL,
            create_collection=create_collection,
        )
        return SyncPipeline(
            zotero=fake_zotero,
            airtable=fake_airtable,
            transformer=transformer,
            zotero_writer=ChunkedWriter(zotero_limiter, zotero_chunk),
            airtable_writer=ChunkedWriter(airtable_limiter, airtable_chunk),
            failure_log=failure_log,
            dispatcher=dispatcher,
        )

    return _make
