"""
Integration errors — structured hierarchy shared by adapters, router and facade.

Adapters raise TransportError and its subclasses; the router converts a
double failure into BothBackendsFailed, the only error a facade caller
should ever have to handle.
"""
from __future__ import annotations

from typing import Any, Optional


class IntegrationError(Exception):
    """Base exception for all backend integration operations."""

    def __init__(self, message: str, backend: str = ""):
        self.backend = backend
        self.message = message
        super().__init__(message)


class TransportError(IntegrationError):
    """Network failure or non-2xx response. status_code is 0 for network errors."""

    def __init__(self, message: str, status_code: int = 0, backend: str = ""):
        self.status_code = status_code
        super().__init__(message, backend)

    def __str__(self) -> str:
        if self.status_code:
            return f"HTTP {self.status_code}: {self.message}"
        return self.message


class RequestTimeoutError(TransportError):
    def __init__(self, timeout: Optional[float] = None, backend: str = ""):
        self.timeout = timeout
        message = f"request timed out after {timeout:g}s" if timeout else "request timed out"
        super().__init__(message, 0, backend)


class PayloadValidationError(TransportError):
    """Backend rejected the payload (missing required field, invalid relation)."""


class NotFoundError(TransportError):
    """Requested entity id does not exist on the queried backend."""


class NotConfiguredError(IntegrationError):
    def __init__(self, missing: list[str], backend: str = "primary"):
        self.missing = missing
        super().__init__(f"{backend} backend not configured: missing {', '.join(missing)}", backend)


class BothBackendsFailed(IntegrationError):
    """Primary and secondary both rejected the same logical operation."""

    def __init__(
        self,
        operation: str,
        primary_error: Optional[BaseException],
        secondary_error: BaseException,
    ):
        self.operation = operation
        self.primary_error = primary_error
        self.secondary_error = secondary_error
        super().__init__(
            f"{operation} failed on both backends "
            f"(primary: {_describe(primary_error)}; secondary: {_describe(secondary_error)})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "both_backends_failed",
            "operation": self.operation,
            "primary": _error_dict(self.primary_error),
            "secondary": _error_dict(self.secondary_error),
        }


def _describe(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "not attempted"
    return f"{type(exc).__name__}: {exc}"


def _error_dict(exc: Optional[BaseException]) -> Optional[dict[str, Any]]:
    if exc is None:
        return None
    return {
        "type": type(exc).__name__,
        "message": str(exc),
        "status_code": getattr(exc, "status_code", None),
    }
