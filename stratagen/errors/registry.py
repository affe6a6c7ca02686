"""Error code registry with E-XXXX format codes.

Categories:
- E-2xxx: Request validation errors
- E-3xxx: Upstream (tool service / generation provider) errors
- E-4xxx: System/internal errors
- E-5xxx: Authentication and quota errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    VALIDATION = "validation"  # E-2xxx
    UPSTREAM = "upstream"  # E-3xxx
    SYSTEM = "system"  # E-4xxx
    AUTH = "auth"  # E-5xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether resubmitting unchanged may succeed.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Missing Required Fields",
        message_template="Missing required fields: {fields}.",
        remediation="Supply every required field and resubmit.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Invalid URL",
        message_template="Invalid URL format: '{url}'.",
        remediation="Provide an absolute http(s) URL.",
    ),
    # Upstream errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.UPSTREAM,
        title="Upstream Unreachable",
        message_template="Could not reach {service}: {reason}",
        remediation="Wait a few minutes and retry.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.UPSTREAM,
        title="Upstream HTTP Error",
        message_template="{service} error: {status} - {body}",
        remediation="Check the upstream service status and retry.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.UPSTREAM,
        title="Malformed Upstream Response",
        message_template="Failed to parse {service} response",
        remediation="The upstream returned an unexpected format. Contact support if this persists.",
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.UPSTREAM,
        title="Generation Failed",
        message_template="{message}",
        remediation="Adjust the request and retry.",
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.UPSTREAM,
        title="Upstream Timeout",
        message_template="{service} did not respond within {seconds:g} seconds",
        remediation="Retry later; the upstream may be overloaded.",
        is_retryable=True,
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Generation Cancelled",
        message_template="Generation cancelled",
        remediation="Start a new generation when ready.",
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Internal Error",
        message_template="Unexpected error: {message}",
        remediation="Retry. Contact support if the problem persists.",
    ),
    # Auth and quota errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.AUTH,
        title="Unauthorized",
        message_template="Unauthorized",
        remediation="Sign in or present a valid credential.",
    ),
    "E-5002": ErrorCode(
        code="E-5002",
        category=ErrorCategory.AUTH,
        title="Rate Limit Exceeded",
        message_template="Rate limit exceeded: {limit} requests per hour.",
        remediation="Wait for the window to reset before submitting again.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Look up an error code definition."""
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all error codes in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]


def format_message(code: str, **context: object) -> str:
    """Render a registry message template with context.

    Unknown codes and missing placeholders fall back to the raw template
    (or a generic message) rather than raising.
    """
    error_def = get_error(code)
    if error_def is None:
        return f"Unknown error: {code}"
    try:
        return error_def.message_template.format(**context)
    except (KeyError, ValueError):
        return error_def.message_template
