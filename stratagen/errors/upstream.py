"""Normalized failures from the tool-execution service and generation provider.

Every failure of an outbound call is raised as one of these types so the
pipeline, the stream and the scheduler deal with a single error shape:
an error code from the registry plus a human-readable message.
"""

from stratagen.errors.registry import format_message

_BODY_PREVIEW_CHARS = 500


def truncate_body(body: str, limit: int = _BODY_PREVIEW_CHARS) -> str:
    """Trim an upstream response body for messages and logs."""
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


class UpstreamError(Exception):
    """Base class for normalized upstream failures.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        service: Which upstream failed ("tool service" or "generation provider").
    """

    code = "E-4002"

    def __init__(self, message: str, service: str = "upstream") -> None:
        super().__init__(message)
        self.message = message
        self.service = service

    def to_details(self) -> dict:
        """Structured form stored on failed execution rows."""
        return {"code": self.code, "service": self.service, "message": self.message}


class TransportError(UpstreamError):
    """Network or transport failure before a response was received."""

    code = "E-3001"

    def __init__(self, service: str, reason: str) -> None:
        super().__init__(
            format_message(self.code, service=service, reason=reason), service
        )
        self.reason = reason


class UpstreamHttpError(UpstreamError):
    """Upstream answered with a non-2xx status."""

    code = "E-3002"

    def __init__(self, service: str, status: int, body: str) -> None:
        preview = truncate_body(body)
        super().__init__(
            format_message(self.code, service=service, status=status, body=preview),
            service,
        )
        self.status = status
        self.body = preview

    def to_details(self) -> dict:
        details = super().to_details()
        details.update({"status": self.status, "body": self.body})
        return details


class MalformedUpstreamResponse(UpstreamError):
    """Upstream body could not be decoded in any accepted form."""

    code = "E-3003"

    def __init__(self, service: str, detail: str = "") -> None:
        super().__init__(format_message(self.code, service=service), service)
        self.detail = detail


class UpstreamLogicalError(UpstreamError):
    """Upstream reported ``success: false`` in an otherwise valid payload."""

    code = "E-3004"

    def __init__(self, service: str, message: str) -> None:
        super().__init__(format_message(self.code, message=message), service)


class UpstreamTimeoutError(UpstreamError):
    """Upstream exceeded the caller's time bound. Maps to HTTP 408."""

    code = "E-3005"

    def __init__(self, service: str, seconds: float) -> None:
        super().__init__(
            format_message(self.code, service=service, seconds=seconds), service
        )
        self.seconds = seconds


class GenerationCancelled(UpstreamError):
    """The caller cancelled the generation before it finished."""

    code = "E-4001"

    def __init__(self, service: str = "pipeline") -> None:
        super().__init__(format_message(self.code), service)
