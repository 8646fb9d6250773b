"""
Excepciones relacionadas con la lógica de dominio.
"""
from zotsync.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details
        )


class ValidationException(DomainException):
    """Petición mal formada. No se toca ningún batch."""

    def __init__(self, message: str, field: str = None):
        details = {"field": field} if field else None
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details
        )


class NothingSyncedException(DomainException):
    """Ningún item llegó a escribirse en Zotero."""

    def __init__(self, message: str = "No se publicó ningún item en Zotero", details=None):
        super().__init__(
            message=message,
            error_code="NOTHING_SYNCED",
            details=details
        )
        self.status_code = 404
