"""Typed domain exceptions for API error mapping.

Routes and exception handlers catch these types to pick the HTTP status
instead of matching on message text.

Usage:
    # In a dependency
    raise AuthenticationError()

    # In main.py
    @app.exception_handler(DomainError)
    async def handler(request, exc): ...
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    status_code = 500
    error = "Internal server error"
    code: str | None = "E-4002"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        """JSON body returned to the caller."""
        body: dict = {"error": self.error, "message": self.message}
        if self.code:
            body["code"] = self.code
        return body


class ValidationError(DomainError):
    """Missing or malformed request fields. Maps to HTTP 400."""

    status_code = 400
    error = "Missing required fields"
    code = "E-2001"

    def __init__(
        self,
        message: str,
        fields: list[str] | None = None,
        error: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.fields = fields or []
        if error:
            self.error = error
        if code:
            self.code = code

    def to_body(self) -> dict:
        body = super().to_body()
        body["fields"] = self.fields
        return body


class AuthenticationError(DomainError):
    """Missing or invalid caller identity. Maps to HTTP 401."""

    status_code = 401
    error = "Unauthorized"
    code = "E-5001"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    status_code = 404
    error = "Not found"
    code = None

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class RateLimitExceeded(DomainError):
    """Caller exceeded the per-window request quota. Maps to HTTP 429."""

    status_code = 429
    error = "Rate limit exceeded"
    code = "E-5002"

    def __init__(self, limit: int, retry_after_seconds: float) -> None:
        super().__init__(
            f"Too many requests. Limit is {limit} per hour; "
            f"try again in {int(retry_after_seconds) + 1} seconds."
        )
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
