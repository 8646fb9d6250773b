"""
Endpoints de webhooks de Airtable hacia Zotero.

- POST /zotero/create  -> corrida inmediata o acumulación hasta batch_size
- POST /zotero/update  -> acumulación + scheduler de quietud (202)
- POST /zotero/delete  -> borrado inmediato
- POST /zotero/resync  -> re-sincronización manual desde Airtable
"""
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from loguru import logger

from zotsync.api.v1.dependencies.sync_deps import (
    get_batch_coordinator,
    get_resync_use_case,
    verify_webhook_token,
)
from zotsync.application.dto.video_dto import ResyncRequestDTO, VideoRecord, WebhookResponseDTO
from zotsync.application.use_cases.batch_coordinator import BatchCoordinator, SubmitResult
from zotsync.application.use_cases.resync_use_case import ResyncUseCase
from zotsync.shared.constants.sync_constants import SyncOperation
from zotsync.shared.exceptions.domain import ValidationException


router = APIRouter(
    prefix="/zotero",
    tags=["Zotero"],
    dependencies=[Depends(verify_webhook_token)],
)

WebhookBody = Union[VideoRecord, List[VideoRecord]]


def _as_list(body: WebhookBody) -> List[VideoRecord]:
    return body if isinstance(body, list) else [body]


def _response(result: SubmitResult) -> JSONResponse:
    dto = WebhookResponseDTO(
        status="processed" if result.processed else "accepted",
        operation=result.operation.value,
        batch_size=len(result.batch),
        items=result.items,
        report=result.report.to_dict() if result.report else None,
    )
    return JSONResponse(status_code=result.status_code, content=dto.model_dump())


async def _submit(
    op: SyncOperation,
    body: WebhookBody,
    batch_size: Optional[int],
    coordinator: BatchCoordinator,
) -> JSONResponse:
    records = _as_list(body)
    logger.info(f"Webhook '{op.value}': {len(records)} registro(s), batch_size={batch_size}")
    result = await coordinator.submit(op, records, batch_size)
    return _response(result)


@router.post("/create", response_model=WebhookResponseDTO)
async def create_items(
    body: WebhookBody = Body(...),
    batch_size: Optional[int] = Query(None, ge=1, description="Tamano total del batch que enviara Airtable"),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Crea items en Zotero a partir de registros nuevos de Airtable."""
    return await _submit(SyncOperation.CREATE, body, batch_size, coordinator)


@router.post("/update", response_model=WebhookResponseDTO, status_code=202)
async def update_items(
    body: WebhookBody = Body(...),
    batch_size: Optional[int] = Query(None, ge=1),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Acumula updates; se procesan tras la ventana de quietud."""
    return await _submit(SyncOperation.UPDATE, body, batch_size, coordinator)


@router.post("/delete", response_model=WebhookResponseDTO)
async def delete_items(
    body: WebhookBody = Body(...),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    return await _submit(SyncOperation.DELETE, body, None, coordinator)


@router.post("/resync")
async def resync_items(
    request: ResyncRequestDTO,
    use_case: ResyncUseCase = Depends(get_resync_use_case),
):
    """
    Re-sincroniza los registros de Airtable modificados desde `modified_since`.
    """
    try:
        since = datetime.fromisoformat(request.modified_since.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationException("modified_since debe ser una fecha ISO-8601", field="modified_since")

    report = await use_case.execute(since, request.max_pages)
    return report.to_dict()
