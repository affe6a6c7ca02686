"""Error handling framework for stratagen.

This package provides:
- Error code registry with E-XXXX format codes
- Domain errors mapped to HTTP statuses by the API layer
- Normalized upstream errors raised by the tool invocation client

Error categories:
- E-2xxx: Validation errors
- E-3xxx: Upstream errors
- E-4xxx: System/internal errors
- E-5xxx: Authentication and quota errors
"""

from stratagen.errors.domain import (
    AuthenticationError,
    DomainError,
    NotFoundError,
    RateLimitExceeded,
    ValidationError,
)
from stratagen.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    format_message,
    get_error,
    get_errors_by_category,
)
from stratagen.errors.upstream import (
    GenerationCancelled,
    MalformedUpstreamResponse,
    TransportError,
    UpstreamError,
    UpstreamHttpError,
    UpstreamLogicalError,
    UpstreamTimeoutError,
    truncate_body,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    "format_message",
    # Domain
    "DomainError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitExceeded",
    # Upstream
    "UpstreamError",
    "TransportError",
    "UpstreamHttpError",
    "MalformedUpstreamResponse",
    "UpstreamLogicalError",
    "UpstreamTimeoutError",
    "GenerationCancelled",
    "truncate_body",
]
