"""
Dependencias para inyección de los servicios de sincronización.
"""
import secrets
from typing import Optional

from fastapi import Depends, Header, Query, Request

from zotsync.application.use_cases.batch_coordinator import BatchCoordinator
from zotsync.application.use_cases.resync_use_case import ResyncUseCase
from zotsync.core.config import settings
from zotsync.core.container import ServiceContainer
from zotsync.shared.exceptions.auth import UnauthorizedException


def get_container(request: Request) -> ServiceContainer:
    """Contenedor construido en el startup."""
    return request.app.state.container


def get_batch_coordinator(
    container: ServiceContainer = Depends(get_container)
) -> BatchCoordinator:
    return container.coordinator


def get_resync_use_case(
    container: ServiceContainer = Depends(get_container)
) -> ResyncUseCase:
    return container.resync


async def verify_webhook_token(
    x_webhook_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None, description="Token alternativo por query string"),
) -> None:
    """
    Verifica el token compartido con las automatizaciones de Airtable.
    Con WEBHOOK_TOKEN vacío no se verifica nada.
    """
    expected = settings.WEBHOOK_TOKEN
    if not expected:
        return
    provided = x_webhook_token or token or ""
    if not secrets.compare_digest(provided, expected):
        raise UnauthorizedException("Token de webhook inválido")
