"""
Pipeline de sincronización Airtable -> Zotero.

Pasos de una corrida:
1. Template de Zotero (una vez por corrida)
2. Transformación secuencial de cada registro
3. Escritura en Zotero por chunks (50) y clasificación de cada item
4. Fallos (transform / write / reconcile) al log de fallos, sin reintento
5. Si la operación es create: difusión de los items creados
6. Write-back de key/version a Airtable por chunks (10); los que ya
   coinciden se reportan como "unchanged" y no se reescriben
7. ReconciliationException solo si habia exitosos y no se reconcilio nada

El éxito parcial es un resultado normal.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from loguru import logger
from pydantic import ValidationError

from zotsync.application.dto.video_dto import VideoRecord
from zotsync.application.services.broadcast_dispatcher import BroadcastDispatcher, BroadcastItem
from zotsync.application.services.item_transformer import (
    CollectionCache,
    ItemTransformer,
    TransformResult,
    upstream_id_from_item,
)
from zotsync.domain.entities.sync_result import (
    ItemOutcome,
    ReconciliationRecord,
    SyncReport,
)
from zotsync.infrastructure.external.throttling import ChunkedWriter
from zotsync.shared.constants.sync_constants import ItemStatus, SyncOperation
from zotsync.shared.exceptions.sync import (
    DownstreamWriteException,
    ReconciliationException,
    TransformException,
)
from zotsync.shared.utils.failure_log import FailureLog

ReportSink = Callable[[SyncReport], Union[None, Awaitable[None]]]


@dataclass
class _Written:
    """Item escrito con éxito en Zotero, junto a su registro de origen."""

    record: VideoRecord
    response: Dict[str, Any]


class SyncPipeline:
    """Orquestador de una corrida sobre un batch de registros."""

    def __init__(
        self,
        *,
        zotero,
        airtable,
        transformer: ItemTransformer,
        zotero_writer: ChunkedWriter,
        airtable_writer: ChunkedWriter,
        failure_log: FailureLog,
        dispatcher: Optional[BroadcastDispatcher] = None,
        item_type: str = "videoRecording",
        videos_table: str = "Videos",
        series_table: str = "Series",
    ):
        """
        Args:
            zotero: ZoteroClient (o cualquier objeto con la misma interfaz)
            airtable: AirtableClient (idem)
            transformer: Transformación registro -> item
            zotero_writer: Writer por chunks sobre el limiter de Zotero
            airtable_writer: Writer por chunks sobre el limiter de Airtable
            failure_log: Sink durable de items fallidos
            dispatcher: Difusión de items nuevos (None = deshabilitada)
        """
        self.zotero = zotero
        self.airtable = airtable
        self.transformer = transformer
        self.zotero_writer = zotero_writer
        self.airtable_writer = airtable_writer
        self.failure_log = failure_log
        self.dispatcher = dispatcher
        self.item_type = item_type
        self.videos_table = videos_table
        self.series_table = series_table

    async def run(
        self,
        records: Sequence[Union[VideoRecord, Dict[str, Any]]],
        operation: SyncOperation,
        sink: Optional[ReportSink] = None,
    ) -> SyncReport:
        report = SyncReport(operation=operation, total=len(records))
        logger.info(f"Iniciando corrida '{operation.value}' con {len(records)} registro(s)")

        videos = self._parse(records, report)
        if not videos:
            await self._emit(report, sink)
            return report

        # 1. Template
        try:
            template = await self.zotero_writer.limiter.run(self.zotero.get_template, self.item_type)
        except Exception as e:
            for video in videos:
                self._fail(report, video.record_id, "template", str(e), video.to_payload())
            raise DownstreamWriteException(f"no se pudo obtener el template: {e}") from e

        # 2. Transformación secuencial
        transformed = await self._transform_all(videos, template, report)

        # 3-4. Escritura en Zotero
        written = await self._write_downstream(transformed, report)

        # 5. Difusión (solo creates)
        if operation == SyncOperation.CREATE and self.dispatcher and written:
            report.broadcasts = await self.dispatcher.dispatch(
                [BroadcastItem(data=w.response.get("data", {}), featured=w.record.featured) for w in written]
            )

        # 6. Reconciliación
        await self._reconcile(written, report)
        await self._write_back_series(report)

        await self._emit(report, sink)

        # 7
        if report.successful and not report.synced:
            raise ReconciliationException(
                pending=len(report.successful),
                details={"failed": [f.to_dict() for f in report.failed if f.stage == "reconcile"]},
            )

        logger.success(
            f"Corrida '{operation.value}' terminada: {len(report.successful)} ok, "
            f"{len(report.unchanged)} sin cambios, {len(report.failed)} fallidos, "
            f"{len(report.synced)} reconciliados"
        )
        return report

    def _parse(self, records, report: SyncReport) -> List[VideoRecord]:
        videos: List[VideoRecord] = []
        for raw in records:
            if isinstance(raw, VideoRecord):
                videos.append(raw)
                continue
            try:
                videos.append(VideoRecord.model_validate(raw))
            except ValidationError as e:
                record_id = raw.get("recordId") if isinstance(raw, dict) else None
                self._fail(report, record_id, "transform", str(e), raw)
        return videos

    async def _transform_all(
        self, videos: List[VideoRecord], template: Dict[str, Any], report: SyncReport
    ) -> List[TransformResult]:
        cache = CollectionCache()
        results: List[TransformResult] = []
        for video in videos:
            try:
                results.append(await self.transformer.transform(video, template, cache))
            except TransformException as e:
                self._fail(report, video.record_id, "transform", e.message, video.to_payload())
        report.collections_created = list(cache.created)
        return results

    async def _write_downstream(
        self, transformed: List[TransformResult], report: SyncReport
    ) -> List[_Written]:
        if not transformed:
            return []

        items = [t.item for t in transformed]
        chunks = await self.zotero_writer.write(items, self.zotero.post_items)
        written: List[_Written] = []

        for chunk in chunks:
            if not chunk.ok:
                error = DownstreamWriteException(str(chunk.error), chunk_size=len(chunk.items))
                for i in range(len(chunk.items)):
                    t = transformed[chunk.offset + i]
                    self._fail(report, t.record.record_id, "write", error.message, t.item)
                continue

            response = chunk.result
            for i in range(len(chunk.items)):
                t = transformed[chunk.offset + i]
                if i in response.successful:
                    obj = response.successful[i]
                    report.successful.append(obj)
                    written.append(_Written(record=t.record, response=obj))
                elif i in response.unchanged:
                    report.unchanged.append(t.record.record_id)
                else:
                    failure = response.failed.get(i) or {"message": "sin respuesta de Zotero"}
                    self._fail(
                        report, t.record.record_id, "write",
                        f"{failure.get('code', '')} {failure.get('message', '')}".strip(), t.item,
                    )
        return written

    async def _reconcile(self, written: List[_Written], report: SyncReport) -> None:
        to_write: List[ReconciliationRecord] = []
        for w in written:
            rec = ReconciliationRecord(
                upstream_id=upstream_id_from_item(w.response) or w.record.record_id,
                downstream_key=w.response.get("key"),
                downstream_version=w.response.get("version"),
            )
            if w.record.zotero_key == rec.downstream_key and w.record.zotero_version == rec.downstream_version:
                report.reconciliation_unchanged.append(rec)
            else:
                to_write.append(rec)

        if not to_write:
            return

        logger.info(f"Sincronizando key/version de {len(to_write)} item(s) con Airtable...")
        update = partial(self.airtable.update, table=self.videos_table)
        chunks = await self.airtable_writer.write([r.to_airtable_update() for r in to_write], update)

        for chunk in chunks:
            pending = to_write[chunk.offset:chunk.offset + len(chunk.items)]
            if chunk.ok:
                report.reconciled.extend(pending)
                continue
            for rec in pending:
                self._fail(report, rec.upstream_id, "reconcile", str(chunk.error), rec.to_airtable_update())

    async def _write_back_series(self, report: SyncReport) -> None:
        created = [c for c in report.collections_created if c.upstream_id]
        if not created:
            return
        update = partial(self.airtable.update, table=self.series_table)
        chunks = await self.airtable_writer.write([c.to_airtable_update() for c in created], update)
        for chunk in chunks:
            if chunk.ok:
                continue
            for payload in chunk.items:
                self._fail(report, payload["id"], "series", str(chunk.error), payload)

    def _fail(self, report: SyncReport, upstream_id, stage: str, error: str, item: Any) -> None:
        report.failed.append(
            ItemOutcome(upstream_id=upstream_id, status=ItemStatus.FAILED, stage=stage, error=error)
        )
        self.failure_log.record(stage, item, error, operation=report.operation.value)

    @staticmethod
    async def _emit(report: SyncReport, sink: Optional[ReportSink]) -> None:
        if sink is None:
            return
        result = sink(report)
        if inspect.isawaitable(result):
            await result

    async def delete(self, records: Sequence[Union[VideoRecord, Dict[str, Any]]]) -> List[str]:
        """Borra en Zotero los items con key, por chunks de 50."""
        keys: List[str] = []
        for raw in records:
            video = raw if isinstance(raw, VideoRecord) else VideoRecord.model_validate(raw)
            if video.zotero_key:
                keys.append(video.zotero_key)
        if not keys:
            return []

        deleted: List[str] = []
        chunks = await self.zotero_writer.write(keys, self.zotero.delete_items)
        for chunk in chunks:
            if chunk.ok:
                deleted.extend(chunk.result or chunk.items)
            else:
                for key in chunk.items:
                    self.failure_log.record("delete", {"zoteroKey": key}, str(chunk.error), operation="delete")
        logger.info(f"{len(deleted)} item(s) borrados de Zotero")
        return deleted
