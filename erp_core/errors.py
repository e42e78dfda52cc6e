"""
Shared error handling for the ERP data access layer.
"""

from typing import Dict, Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ErpException(Exception):
    """Base exception for the data access layer."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class BackendError(ErpException):
    """Error payload returned by the hosted REST API.

    PostgREST reports failures as ``{"code", "message", "details", "hint"}``;
    ``code`` is either a PostgREST code (``PGRST205``) or a Postgres SQLSTATE
    (``42501`` for row-level-security denials, ``23505`` for unique violations).
    """

    def __init__(self,
                 code: Optional[str],
                 message: str,
                 details: Optional[str] = None,
                 hint: Optional[str] = None,
                 status_code: Optional[int] = None):
        payload = {}
        if details:
            payload["details"] = details
        if hint:
            payload["hint"] = hint
        super().__init__(code or "BACKEND_ERROR", message, payload)
        self.hint = hint
        self.raw_details = details
        if status_code is not None:
            self.status_code = status_code

    @classmethod
    def from_payload(cls, payload: Any, status_code: Optional[int] = None) -> "BackendError":
        """Build from a decoded error body."""
        if not isinstance(payload, dict):
            return cls(None, str(payload) if payload else "Backend request failed", status_code=status_code)
        return cls(
            code=payload.get("code"),
            message=payload.get("message") or payload.get("error_description") or payload.get("msg")
            or "Backend request failed",
            details=payload.get("details"),
            hint=payload.get("hint"),
            status_code=status_code,
        )

    @classmethod
    def from_response(cls, response) -> "BackendError":
        """Build from an ``httpx.Response`` with an error status."""
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        return cls.from_payload(payload, status_code=response.status_code)


class OperationCancelledError(ErpException):
    """Raised in place of a result when the caller abandoned the request."""

    status_code = 499

    def __init__(self, message: str = "Aborted", details: Optional[Dict[str, Any]] = None):
        super().__init__("ABORTED", message, details)


class AuthorizationError(ErpException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(ErpException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(ErpException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
