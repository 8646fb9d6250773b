"""
Excepciones del pipeline de sincronización.

Solo ReconciliationException llega al llamador (cuando no se pudo
reconciliar nada); el resto se aislan por item o por chunk y terminan
en el log de fallos.
"""
from typing import Any, Optional

from zotsync.shared.exceptions.base import AppException


class SyncException(AppException):
    """Excepción base para errores del pipeline."""

    def __init__(self, message: str, error_code: str = "SYNC_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=500,
            error_code=error_code,
            details=details
        )


class TransformException(SyncException):
    """Fallo al transformar un solo registro."""

    def __init__(self, record_id: Optional[str], reason: str):
        super().__init__(
            message=f"No se pudo transformar el registro {record_id}: {reason}",
            error_code="TRANSFORM_ERROR",
            details={"record_id": record_id, "reason": reason}
        )
        self.record_id = record_id


class DownstreamWriteException(SyncException):
    """Fallo al escribir un chunk en Zotero."""

    def __init__(self, reason: str, chunk_size: int = 0):
        super().__init__(
            message=f"Error escribiendo en Zotero: {reason}",
            error_code="DOWNSTREAM_WRITE_ERROR",
            details={"chunk_size": chunk_size}
        )


class ReconciliationException(SyncException):
    """No se pudo escribir de vuelta en Airtable ningún item exitoso."""

    def __init__(self, pending: int, details: Optional[dict[str, Any]] = None):
        super().__init__(
            message=f"No se pudieron sincronizar {pending} item(s) de Zotero con Airtable",
            error_code="RECONCILIATION_ERROR",
            details=details or {"pending": pending}
        )
        self.status_code = 404


class BroadcastException(SyncException):
    """Fallo de un canal de difusión. Nunca se propaga fuera del dispatcher."""

    def __init__(self, channel: str, reason: str):
        super().__init__(
            message=f"Canal '{channel}' falló: {reason}",
            error_code="BROADCAST_ERROR",
            details={"channel": channel}
        )
