# buyer_leads/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class UnauthenticatedError(BaseAPIException):
    """No identity, or the credential could not be resolved to one."""
    def __init__(self, message: str = "Authentication required", **kwargs):
        kwargs.setdefault("code", "unauthenticated")
        super().__init__(message, status_code=401, **kwargs)


class ForbiddenError(BaseAPIException):
    """Authenticated, but neither the owner nor an admin."""
    def __init__(self, message: str = "Not allowed to access this lead", **kwargs):
        kwargs.setdefault("code", "forbidden")
        super().__init__(message, status_code=403, **kwargs)


class NotFoundError(BaseAPIException):
    """Resource not found."""
    def __init__(self, message: str = "Resource not found", **kwargs):
        kwargs.setdefault("code", "not_found")
        super().__init__(message, status_code=404, **kwargs)


class ConflictError(BaseAPIException):
    """Optimistic-concurrency mismatch."""
    def __init__(self, message: str = "Record changed, please refresh", **kwargs):
        kwargs.setdefault("code", "conflict")
        super().__init__(message, status_code=409, **kwargs)


class ValidationError(BaseAPIException):
    """Field or cross-field rule violations; carries the full error list."""
    def __init__(
        self,
        message: str = "Validation error",
        errors: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ):
        kwargs.setdefault("code", "validation_error")
        details = kwargs.pop("details", None) or {}
        if errors is not None:
            details.setdefault("errors", errors)
        super().__init__(message, status_code=422, details=details, **kwargs)

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return self.details.get("errors", [])


class InvalidEnumValueError(BaseAPIException):
    """A human-facing value with no entry in the field's mapping table."""
    def __init__(self, field: str, value: Any, **kwargs):
        self.field = field
        self.value = value
        kwargs.setdefault("code", "invalid_enum_value")
        super().__init__(
            f"Invalid value for {field}: {value!r}",
            status_code=422,
            details={"field": field, "value": value},
            **kwargs,
        )


class BatchTooLargeError(BaseAPIException):
    """Import batch exceeds the row cap."""
    def __init__(self, row_count: int, max_rows: int, **kwargs):
        kwargs.setdefault("code", "batch_too_large")
        super().__init__(
            f"Import is limited to {max_rows} rows, got {row_count}",
            status_code=413,
            details={"row_count": row_count, "max_rows": max_rows},
            **kwargs,
        )


class RateLimitError(BaseAPIException):
    """Rate limit exceeded."""
    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[int] = None, **kwargs):
        kwargs.setdefault("code", "rate_limited")
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class StorageError(BaseAPIException):
    """Wraps failures raised by the persistence layer."""
    def __init__(self, message: str = "Storage error", **kwargs):
        kwargs.setdefault("code", "storage_error")
        super().__init__(message, status_code=500, **kwargs)


class ServiceUnavailableError(BaseAPIException):
    """Service unavailable."""
    def __init__(self, message: str = "Service unavailable", **kwargs):
        kwargs.setdefault("code", "service_unavailable")
        super().__init__(message, status_code=503, **kwargs)
