"""
curator/errors.py
Centralized error taxonomy for the ranking core

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

PROPAGATION:
- ValidationError / NotFoundError / TierNotEmptyError surface unchanged
- ExternalServiceError never leaves the tournament pool builder
- PersistenceError propagates and triggers client-side rollback
"""

from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_TIER = "UNKNOWN_TIER"
    MALFORMED_ID = "MALFORMED_ID"
    INVALID_ORDER = "INVALID_ORDER"

    AUTH_REQUIRED = "AUTH_REQUIRED"

    NOT_FOUND = "NOT_FOUND"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    COLLECTION_NOT_FOUND = "COLLECTION_NOT_FOUND"
    RANK_NOT_FOUND = "RANK_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    TIER_NOT_EMPTY = "TIER_NOT_EMPTY"

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class ValidationError(APIError):
    """400 Bad Request - unknown tier name, malformed id, bad ordering"""
    def __init__(self, message: str, code: str = ErrorCode.VALIDATION_ERROR, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Validation Error",
            message=message,
            code=code,
            details=details
        )


class UnauthorizedError(APIError):
    """401 Unauthorized - caller identity missing"""
    def __init__(self, message: str = "Authentication required", code: str = ErrorCode.AUTH_REQUIRED):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message=message,
            code=code
        )


class NotFoundError(APIError):
    """404 Not Found - missing item, collection or rank"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code,
            details={"resource": resource, "identifier": identifier} if identifier is not None else None
        )


class TierNotEmptyError(APIError):
    """409 Conflict - a rank cannot be deleted while items reference it"""
    def __init__(self, rank_name: str, item_count: int):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Tier Not Empty",
            message=f"Tier '{rank_name}' still holds {item_count} item(s)",
            code=ErrorCode.TIER_NOT_EMPTY,
            details={"tier": rank_name, "item_count": item_count}
        )


class ExternalServiceError(APIError):
    """502 Bad Gateway - discovery service failure (non-fatal inside the core)"""
    def __init__(self, service: str, message: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error="External Service Error",
            message=f"{service}: {message}",
            code=ErrorCode.EXTERNAL_SERVICE_ERROR,
            details={"service": service}
        )


class PersistenceError(APIError):
    """500 Internal Server Error - a transactional write failed and was rolled back"""
    def __init__(self, message: str = "The change could not be saved", operation: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Persistence Error",
            message=message,
            code=ErrorCode.PERSISTENCE_ERROR,
            details={"operation": operation} if operation else None
        )


def error_from_payload(status_code: int, payload: Dict[str, Any]) -> APIError:
    """
    Rebuild a typed error from a JSON error body.

    Used by the HTTP client so callers can catch the same exception
    classes on both sides of the wire.
    """
    code = payload.get("code") or ErrorCode.INTERNAL_ERROR
    message = payload.get("message") or "Request failed"
    details = payload.get("details") or {}

    if code == ErrorCode.TIER_NOT_EMPTY:
        return TierNotEmptyError(details.get("tier", ""), details.get("item_count", 0))
    if status_code == status.HTTP_404_NOT_FOUND:
        error = NotFoundError(details.get("resource", "Resource"), details.get("identifier"), code=code)
        error.message = message
        return error
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return UnauthorizedError(message, code=code)
    if status_code in (status.HTTP_400_BAD_REQUEST, status.HTTP_422_UNPROCESSABLE_ENTITY):
        return ValidationError(message, code=code, details=details or None)
    if code == ErrorCode.EXTERNAL_SERVICE_ERROR:
        return ExternalServiceError(details.get("service", "upstream"), message)
    return PersistenceError(message, operation=details.get("operation"))
