"""
Excepciones relacionadas con la autenticación de webhooks.
"""
from zotsync.shared.exceptions.base import AppException


class AuthException(AppException):
    """Excepción base para errores de autenticación."""

    def __init__(self, message: str, error_code: str = "AUTH_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=401,
            error_code=error_code,
            details=details
        )


class UnauthorizedException(AuthException):
    """Token de webhook ausente o inválido."""

    def __init__(self, message: str = "Acceso denegado"):
        super().__init__(
            message=message,
            error_code="UNAUTHORIZED"
        )
