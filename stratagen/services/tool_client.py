"""HTTP client for the tool-execution service and the generation provider.

Thin wrapper around httpx. Each method performs exactly one outbound call
with a bearer credential and returns a decoded payload, or raises one of
the normalized upstream errors from ``stratagen.errors``. No retries are
performed here; the caller is the retry boundary.

Example:
    client = ToolInvocationClient(settings)
    outcome = await client.generate(
        "generate_edit_mode_content", {"cardId": "c1", ...}, token=token,
    )
    await client.aclose()
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from stratagen.config import Settings
from stratagen.errors import (
    MalformedUpstreamResponse,
    TransportError,
    UpstreamHttpError,
    UpstreamLogicalError,
    UpstreamTimeoutError,
    truncate_body,
)
from stratagen.services.cancellation import CancellationToken
from stratagen.services.envelope import (
    ParseFailure,
    parse_completion,
    parse_structured_content,
    parse_tool_envelope,
)

logger = logging.getLogger(__name__)

TOOL_SERVICE = "tool service"
GENERATION_PROVIDER = "generation provider"

_CONNECT_TIMEOUT = 10.0


@dataclass(frozen=True)
class PromptMaterial:
    """Prompt material and configuration returned by the tool service.

    Attributes:
        system: System prompt text.
        user: User prompt text.
        model: Optional model override from the tool service.
        temperature: Optional sampling temperature override.
        max_tokens: Optional completion length override.
        structured: Whether the completion must be JSON-decoded.
    """

    system: str
    user: str
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    structured: bool = True

    @classmethod
    def from_payload(cls, payload: dict) -> "PromptMaterial | None":
        """Extract prompt material from a tool payload, if present.

        Returns None when the payload carries no prompts, meaning the tool
        service already produced the final result.
        """
        prompts = payload.get("prompts")
        if not isinstance(prompts, dict):
            return None
        system = prompts.get("system") or prompts.get("systemPrompt")
        user = prompts.get("user") or prompts.get("userPrompt")
        if not isinstance(user, str) or not user:
            return None

        config = payload.get("config") if isinstance(payload.get("config"), dict) else {}
        return cls(
            system=system if isinstance(system, str) else "",
            user=user,
            model=config.get("model"),
            temperature=config.get("temperature"),
            max_tokens=config.get("max_tokens") or config.get("maxTokens"),
            structured=config.get("response_format", "json") == "json",
        )


@dataclass(frozen=True)
class Completion:
    """Generated content from the provider.

    Attributes:
        content: Decoded JSON when structured output was requested,
            otherwise the raw text.
        usage: Token usage block from the provider.
        model: Model that produced the content.
    """

    content: Any
    usage: dict = field(default_factory=dict)
    model: str | None = None

    @property
    def total_tokens(self) -> int:
        value = self.usage.get("total_tokens", 0)
        return value if isinstance(value, int) else 0


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of the two-call generation sequence.

    ``completion`` is None when the tool service returned a final result
    instead of prompt material, in which case call 2 was not made.
    """

    tool_payload: dict
    completion: Completion | None = None


class ToolInvocationClient:
    """Client for the tool-execution service and generation provider.

    Owns one shared httpx.AsyncClient. Pass ``http_client`` to inject a
    client with a custom transport (tests).
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.provider_timeout_seconds, connect=_CONNECT_TIMEOUT)
        )

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def _post(
        self,
        service: str,
        url: str,
        bearer: str,
        body: dict,
        token: CancellationToken | None,
        timeout: float | None,
    ) -> str:
        """POST JSON and return the body text of a 2xx response.

        Raises:
            GenerationCancelled: If the token fires before or during the call.
            UpstreamTimeoutError: If ``timeout`` elapses first.
            TransportError: On network failure.
            UpstreamHttpError: On a non-2xx status.
        """
        headers = {"Content-Type": "application/json"}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"

        call = self._client.post(url, json=body, headers=headers)
        if timeout is not None:
            call = asyncio.wait_for(call, timeout=timeout)

        try:
            if token is not None:
                response = await token.guard(call)
            else:
                response = await call
        except asyncio.TimeoutError as e:
            logger.warning("%s call to %s timed out after %ss", service, url, timeout)
            raise UpstreamTimeoutError(service, timeout or 0) from e
        except httpx.TimeoutException as e:
            raise TransportError(service, f"timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("%s call to %s failed: %s", service, url, e)
            raise TransportError(service, str(e) or type(e).__name__) from e

        text = response.text
        if not 200 <= response.status_code < 300:
            logger.warning(
                "%s returned HTTP %d: %s",
                service,
                response.status_code,
                truncate_body(text, 200),
            )
            raise UpstreamHttpError(service, response.status_code, text)
        return text

    async def call_tool(
        self,
        tool_name: str,
        payload: dict,
        *,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> dict:
        """Call 1: invoke a tool on the tool-execution service.

        Args:
            tool_name: Tool path segment, e.g. ``generate_edit_mode_content``.
            payload: Tool-specific JSON body.
            token: Cancellation token for the call.
            timeout: Optional upper bound in seconds for the whole call.

        Returns:
            Decoded tool payload (envelope removed).

        Raises:
            MalformedUpstreamResponse: If the body is neither a valid
                envelope nor direct JSON, or is not a JSON object.
            UpstreamLogicalError: If the payload reports ``success: false``.
        """
        url = f"{self._settings.tool_service_url}/api/tools/{tool_name}"
        logger.info("Calling tool %s", tool_name)
        raw = await self._post(
            TOOL_SERVICE,
            url,
            self._settings.tool_service_token,
            payload,
            token,
            timeout,
        )

        parsed = parse_tool_envelope(raw)
        if isinstance(parsed, ParseFailure):
            logger.warning("Tool %s returned unparseable body: %s", tool_name, parsed.reason)
            raise MalformedUpstreamResponse(TOOL_SERVICE, parsed.reason)
        result = parsed.payload
        if not isinstance(result, dict):
            raise MalformedUpstreamResponse(TOOL_SERVICE, "payload is not an object")

        if result.get("success") is False:
            message = result.get("error") or result.get("message") or "Generation failed"
            raise UpstreamLogicalError(TOOL_SERVICE, str(message))
        return result

    async def complete(
        self,
        prompts: PromptMaterial,
        *,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> Completion:
        """Call 2: turn prompt material into content via the provider.

        Bounded by ``timeout`` when given, otherwise by the configured
        provider timeout.

        Raises:
            MalformedUpstreamResponse: If the completion body or (for
                structured output) its content is not valid JSON.
        """
        settings = self._settings
        body: dict[str, Any] = {
            "model": prompts.model or settings.generation_model,
            "messages": [
                {"role": "system", "content": prompts.system},
                {"role": "user", "content": prompts.user},
            ],
            "temperature": (
                prompts.temperature
                if prompts.temperature is not None
                else settings.generation_temperature
            ),
            "max_tokens": prompts.max_tokens or settings.generation_max_tokens,
        }
        if prompts.structured:
            body["response_format"] = {"type": "json_object"}

        url = f"{settings.generation_provider_url}/v1/chat/completions"
        raw = await self._post(
            GENERATION_PROVIDER,
            url,
            settings.generation_provider_api_key,
            body,
            token,
            timeout if timeout is not None else settings.provider_timeout_seconds,
        )

        extracted = parse_completion(raw)
        if isinstance(extracted, ParseFailure):
            raise MalformedUpstreamResponse(GENERATION_PROVIDER, extracted.reason)

        content: Any = extracted.text
        if prompts.structured:
            decoded = parse_structured_content(extracted.text)
            if isinstance(decoded, ParseFailure):
                raise MalformedUpstreamResponse(GENERATION_PROVIDER, decoded.reason)
            content = decoded.payload

        return Completion(content=content, usage=extracted.usage, model=extracted.model)

    async def generate(
        self,
        tool_name: str,
        payload: dict,
        *,
        token: CancellationToken | None = None,
        tool_timeout: float | None = None,
        on_prompts_ready: Callable[[PromptMaterial], None] | None = None,
    ) -> GenerationOutcome:
        """Run call 1 and, only if it succeeds with prompt material, call 2.

        Any failure of call 1 propagates before call 2 is attempted.

        Args:
            tool_name: Tool to invoke on the tool-execution service.
            payload: Tool request body.
            token: Cancellation token checked at both suspension points.
            tool_timeout: Optional upper bound for call 1.
            on_prompts_ready: Invoked between the calls when prompt
                material was returned.

        Returns:
            GenerationOutcome with the tool payload and, when call 2 ran,
            the provider completion.
        """
        tool_payload = await self.call_tool(
            tool_name, payload, token=token, timeout=tool_timeout
        )

        prompts = PromptMaterial.from_payload(tool_payload)
        if prompts is None:
            return GenerationOutcome(tool_payload=tool_payload)

        if on_prompts_ready is not None:
            on_prompts_ready(prompts)
        if token is not None:
            token.raise_if_cancelled()

        completion = await self.complete(prompts, token=token)
        return GenerationOutcome(tool_payload=tool_payload, completion=completion)
