from __future__ import annotations

from typing import Any, Optional

from app.utils.error_codes import ErrorCode, ERROR_MESSAGES


def _normalize_error_code(value: ErrorCode | str | None) -> ErrorCode:
    if value is None:
        return ErrorCode.E010
    if isinstance(value, ErrorCode):
        return value
    try:
        return ErrorCode(str(value))
    except ValueError:
        return ErrorCode.E010


class CrowdfundException(Exception):
    """Base exception for the payments application.

    API response format is handled by the global exception handler.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | str = ErrorCode.E010,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        normalized = _normalize_error_code(code)
        if message is None:
            message = ERROR_MESSAGES.get(normalized, ERROR_MESSAGES[ErrorCode.E010])

        self.message = message
        self.code = normalized.value
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class InvalidInputException(CrowdfundException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E002, details=details, status_code=400)


class NotFoundException(CrowdfundException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message or "Not Found", code=ErrorCode.E001, details=details, status_code=404)


class ReferentialInvalidException(CrowdfundException):
    """Project or reward missing or not in an eligible state.

    The notification path converts this into a "rejected" no-op outcome.
    """

    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E003, details=details, status_code=422)


class ConflictException(CrowdfundException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E008, details=details, status_code=409)


class ConfigurationException(CrowdfundException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E007, details=details, status_code=500)


class GatewayException(CrowdfundException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E006, details=details, status_code=502)


class CardDeclinedException(GatewayException):
    """Synchronous charge rejected by the gateway; carries a user-facing message."""

    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        CrowdfundException.__init__(self, message, code=ErrorCode.E004, details=details, status_code=402)


class GatewayUnavailableException(GatewayException):
    """Gateway timeout or connection failure. Safe to retry."""

    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        CrowdfundException.__init__(self, message, code=ErrorCode.E005, details=details, status_code=503)


class PersistenceException(CrowdfundException):
    """Storage write/commit failure; the unit of work was rolled back.

    Rendered as 503 so the gateway redelivers the notification.
    """

    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E009, details=details, status_code=503)
