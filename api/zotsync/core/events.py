"""
Manejadores de eventos de inicio y cierre de la aplicación.
"""
from typing import Callable
from fastapi import FastAPI
from loguru import logger

from zotsync.core.config import settings
from zotsync.core.container import build_container


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicación.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Función asíncrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicación."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            # Validar configuración crítica
            _validate_config()

            # Configurar logging adicional
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            # Store de batches, clientes, pipeline y scheduler
            app.state.container = build_container(settings)
            logger.info(f"Backend de batches: {settings.BATCH_BACKEND}")

            logger.success("Aplicación iniciada correctamente")

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuración crítica esté presente."""
    warnings = []

    if not settings.ZOTERO_API_KEY or not settings.ZOTERO_USER:
        warnings.append("ZOTERO_API_KEY / ZOTERO_USER no configurados - no se podra escribir en Zotero")
    if not settings.AIRTABLE_TOKEN or not settings.AIRTABLE_BASE_ID:
        warnings.append("AIRTABLE_TOKEN / AIRTABLE_BASE_ID no configurados - no habrá reconciliación")
    if not settings.WEBHOOK_TOKEN:
        warnings.append("WEBHOOK_TOKEN vacío - los webhooks no se autentican")

    # Mostrar advertencias
    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicación.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Función asíncrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicación."""
        logger.info("Cerrando aplicación...")

        container = getattr(app.state, "container", None)
        if container is not None:
            # Detiene timers pendientes y cierra Redis
            await container.close()

        logger.success("Aplicación cerrada correctamente")

    return shutdown
