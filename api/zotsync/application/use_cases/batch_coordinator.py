"""
Coordinador de batches: decide por cada webhook si procesar ya,
acumular, o armar el scheduler de quietud.

- create con un solo registro y sin batch declarado -> corrida inmediata
- create con batch declarado -> acumula hasta alcanzar el tamano declarado
- update -> acumula y (re)arma el scheduler; la corrida ocurre tras la quietud
- delete -> borrado inmediato en Zotero
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from zotsync.application.dto.video_dto import VideoRecord
from zotsync.application.use_cases.sync_pipeline import SyncPipeline
from zotsync.domain.entities.sync_result import SyncReport
from zotsync.infrastructure.batch.scheduler import QuiescenceScheduler
from zotsync.infrastructure.batch.store import BatchStore
from zotsync.shared.constants.sync_constants import SyncOperation
from zotsync.shared.exceptions.domain import NothingSyncedException, ValidationException


@dataclass
class SubmitResult:
    """Resultado de un webhook: procesado (200) o aceptado en batch (202)."""

    operation: SyncOperation
    processed: bool
    batch: List[Dict[str, Any]] = field(default_factory=list)
    report: Optional[SyncReport] = None
    deleted: List[str] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        return 200 if self.processed else 202

    @property
    def items(self) -> List[Dict[str, Any]]:
        if self.operation == SyncOperation.DELETE:
            return [{"zoteroKey": key} for key in self.deleted]
        if self.report is not None:
            return self.report.to_dict()["reconciled"]
        return self.batch


class BatchCoordinator:
    """Punto de entrada de los webhooks hacia el pipeline."""

    def __init__(
        self,
        *,
        store: BatchStore,
        pipeline: SyncPipeline,
        scheduler: QuiescenceScheduler,
    ):
        self.store = store
        self.pipeline = pipeline
        self.scheduler = scheduler

    async def submit(
        self,
        op: SyncOperation,
        records: Sequence[VideoRecord],
        batch_size: Optional[int] = None,
    ) -> SubmitResult:
        if not records:
            raise ValidationException("El webhook no contiene registros", field="body")
        if batch_size is not None and batch_size < 1:
            raise ValidationException("batch_size debe ser >= 1", field="batch_size")

        if op == SyncOperation.DELETE:
            return await self._delete(records)
        if op == SyncOperation.UPDATE:
            return await self._accumulate_update(records)
        return await self._create(records, batch_size)

    async def _create(self, records: Sequence[VideoRecord], batch_size: Optional[int]) -> SubmitResult:
        expected = batch_size or len(records)

        if len(records) >= expected and await self.store.size(SyncOperation.CREATE) == 0:
            logger.info(f"Create de {len(records)} registro(s): procesando de inmediato")
            report = await self.pipeline.run(list(records), SyncOperation.CREATE)
            return self._processed(SyncOperation.CREATE, report)

        content = await self.store.append(SyncOperation.CREATE, [r.to_payload() for r in records])
        logger.info(f"Batch 'create': {len(content)}/{expected}")

        # Solo el append que cruza el umbral dispara la corrida
        crossed = len(content) >= expected and len(content) - len(records) < expected
        if not crossed:
            return SubmitResult(operation=SyncOperation.CREATE, processed=False, batch=content)

        # Mismo lock que el scheduler: un solo batch en proceso por operación
        async with self.scheduler.lock(SyncOperation.CREATE):
            try:
                report = await self.pipeline.run(content, SyncOperation.CREATE)
            finally:
                await self.store.clear(SyncOperation.CREATE, count=len(content))
        return self._processed(SyncOperation.CREATE, report)

    async def _accumulate_update(self, records: Sequence[VideoRecord]) -> SubmitResult:
        content = await self.store.append(SyncOperation.UPDATE, [r.to_payload() for r in records])
        await self.scheduler.notify(SyncOperation.UPDATE)
        logger.info(f"Batch 'update': {len(content)} evento(s) acumulados")
        return SubmitResult(operation=SyncOperation.UPDATE, processed=False, batch=content)

    async def _delete(self, records: Sequence[VideoRecord]) -> SubmitResult:
        deleted = await self.pipeline.delete(list(records))
        if not deleted:
            raise NothingSyncedException("No se borró ningún item de Zotero")
        return SubmitResult(operation=SyncOperation.DELETE, processed=True, deleted=deleted)

    @staticmethod
    def _processed(op: SyncOperation, report: SyncReport) -> SubmitResult:
        if not report.successful and not report.unchanged:
            raise NothingSyncedException(details=report.to_dict())
        return SubmitResult(operation=op, processed=True, report=report)

