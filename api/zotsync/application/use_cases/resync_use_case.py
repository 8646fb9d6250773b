"""
Re-sincronización manual desde Airtable.

Trae los registros de Videos modificados desde una fecha y los pasa por
el pipeline como update. Sirve para recuperar items cuya reconciliación
falló (quedaron en el log de fallos).
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from zotsync.application.use_cases.sync_pipeline import SyncPipeline
from zotsync.domain.entities.sync_result import SyncReport
from zotsync.infrastructure.external.airtable.airtable_client import build_incremental_filter_formula
from zotsync.infrastructure.external.airtable.table_mappings import (
    MappingError,
    map_airtable_record,
    video_fields,
)
from zotsync.infrastructure.external.throttling import RateLimiter
from zotsync.shared.constants.sync_constants import SyncOperation
from zotsync.shared.exceptions.domain import NothingSyncedException


class ResyncUseCase:
    """Pull incremental de Airtable + corrida de update."""

    def __init__(
        self,
        *,
        airtable,
        airtable_limiter: RateLimiter,
        pipeline: SyncPipeline,
        videos_table: str,
        last_modified_field: str,
    ):
        self.airtable = airtable
        self.airtable_limiter = airtable_limiter
        self.pipeline = pipeline
        self.videos_table = videos_table
        self.last_modified_field = last_modified_field

    async def execute(self, modified_since: datetime, max_pages: Optional[int] = None) -> SyncReport:
        formula = build_incremental_filter_formula(self.last_modified_field, modified_since)
        pages = self.airtable.iter_pages(self.videos_table, formula=formula, fields=video_fields())
        records = []
        # Cada página es un request, espaciado por el limiter
        while max_pages is None or max_pages > 0:
            page = await self.airtable_limiter.run(next, pages, None)
            if page is None:
                break
            records.extend(page)
            if max_pages is not None:
                max_pages -= 1
        logger.info(f"Resync: {len(records)} registro(s) modificados desde {modified_since.isoformat()}")

        payloads = []
        for record in records:
            try:
                payloads.append(map_airtable_record(record))
            except MappingError as e:
                self.pipeline.failure_log.record("transform", record.fields, str(e), operation="resync")

        if not payloads:
            raise NothingSyncedException("No hay registros modificados para re-sincronizar")
        return await self.pipeline.run(payloads, SyncOperation.UPDATE)
