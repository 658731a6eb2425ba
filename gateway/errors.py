"""Error taxonomy shared by every layer of the gateway."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Stable error codes exposed to clients."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Upstream classification and generation failures
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    IMAGE_GENERATION_ERROR = "IMAGE_GENERATION_ERROR"
    AUDIO_GENERATION_ERROR = "AUDIO_GENERATION_ERROR"
    VIDEO_GENERATION_ERROR = "VIDEO_GENERATION_ERROR"


HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.MODEL_NOT_FOUND: 404,
    ErrorCode.CONVERSATION_NOT_FOUND: 404,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.EXTERNAL_API_ERROR: 502,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.AUTHENTICATION_ERROR: 502,
    ErrorCode.MODEL_NOT_AVAILABLE: 503,
    ErrorCode.IMAGE_GENERATION_ERROR: 502,
    ErrorCode.AUDIO_GENERATION_ERROR: 502,
    ErrorCode.VIDEO_GENERATION_ERROR: 502,
}


class AppError(Exception):
    """Application error carrying a stable code and structured details."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(UTC)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        """Render the error the way it is sent over the wire."""
        payload: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"AppError(code={self.code.value!r}, message={self.message!r})"


class StorageBackendError(Exception):
    """Raised by storage providers when the backend itself fails."""


def classify_provider_error(error: Exception, provider: str) -> AppError:
    """Map an upstream provider failure onto the error taxonomy.

    Args:
        error: Exception raised by a provider SDK
        provider: Provider name, used in messages

    Returns:
        AppError describing the failure
    """
    if isinstance(error, AppError):
        return error

    details = {"originalError": str(error), "provider": provider}
    status = getattr(error, "status_code", None)
    if not isinstance(status, int):
        return AppError(ErrorCode.INTERNAL_SERVER_ERROR, f"Unexpected error calling {provider}", details)

    details["status"] = status
    if status == 401:
        return AppError(ErrorCode.AUTHENTICATION_ERROR, f"Authentication with {provider} failed", details)
    if status == 429:
        return AppError(ErrorCode.RATE_LIMIT_EXCEEDED, f"Rate limit exceeded at {provider}", details)
    if status == 503:
        return AppError(ErrorCode.MODEL_NOT_AVAILABLE, f"Model temporarily unavailable at {provider}", details)
    return AppError(ErrorCode.EXTERNAL_API_ERROR, f"{provider} request failed with status {status}", details)
