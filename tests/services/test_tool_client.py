"""Tests for ToolInvocationClient against a fake upstream transport."""

import asyncio

import httpx
import pytest

from stratagen.errors import (
    GenerationCancelled,
    MalformedUpstreamResponse,
    TransportError,
    UpstreamHttpError,
    UpstreamLogicalError,
    UpstreamTimeoutError,
)
from stratagen.services.cancellation import CancellationToken
from stratagen.services.tool_client import PromptMaterial
from tests.helpers.fake_upstream import (
    PROVIDER_PATH,
    FakeUpstream,
    completion_body,
    make_settings,
    make_tool_client,
    tool_envelope,
    tool_path,
)

TOOL = "generate_edit_mode_content"
PROMPTS_PAYLOAD = {"success": True, "prompts": {"system": "s", "user": "u"}}


class TestCallTool:
    @pytest.mark.asyncio
    async def test_posts_with_bearer_and_unwraps_envelope(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, tool_envelope({"success": True, "x": 1})))
        client = make_tool_client(fake_upstream)

        result = await client.call_tool(TOOL, {"cardId": "c1"})

        assert result == {"success": True, "x": 1}
        call = fake_upstream.calls[0]
        assert call.path == "/api/tools/generate_edit_mode_content"
        assert call.body == {"cardId": "c1"}
        assert call.headers["authorization"] == "Bearer tool-token"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_direct_payload(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, {"success": True, "y": 2}))
        client = make_tool_client(fake_upstream)

        assert await client.call_tool(TOOL, {}) == {"success": True, "y": 2}

    @pytest.mark.asyncio
    async def test_non_2xx_is_http_error(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (503, "Service Unavailable"))
        client = make_tool_client(fake_upstream)

        with pytest.raises(UpstreamHttpError) as exc_info:
            await client.call_tool(TOOL, {})
        assert exc_info.value.status == 503
        assert exc_info.value.body == "Service Unavailable"
        assert exc_info.value.code == "E-3002"

    @pytest.mark.asyncio
    async def test_transport_failure(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), httpx.ConnectError("connection refused"))
        client = make_tool_client(fake_upstream)

        with pytest.raises(TransportError) as exc_info:
            await client.call_tool(TOOL, {})
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unparseable_body_is_malformed(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, "<html>oops</html>"))
        client = make_tool_client(fake_upstream)

        with pytest.raises(MalformedUpstreamResponse):
            await client.call_tool(TOOL, {})

    @pytest.mark.asyncio
    async def test_non_object_payload_is_malformed(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, [1, 2, 3]))
        client = make_tool_client(fake_upstream)

        with pytest.raises(MalformedUpstreamResponse):
            await client.call_tool(TOOL, {})

    @pytest.mark.asyncio
    async def test_success_false_is_logical_error(self, fake_upstream):
        fake_upstream.route(
            tool_path(TOOL), (200, tool_envelope({"success": False, "error": "Card not found"}))
        )
        client = make_tool_client(fake_upstream)

        with pytest.raises(UpstreamLogicalError) as exc_info:
            await client.call_tool(TOOL, {})
        assert exc_info.value.message == "Card not found"

    @pytest.mark.asyncio
    async def test_timeout_is_distinct_error(self, fake_upstream):
        async def hang(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={}, request=request)

        fake_upstream.route(tool_path(TOOL), hang)
        client = make_tool_client(fake_upstream)

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await client.call_tool(TOOL, {}, timeout=0.05)
        assert exc_info.value.code == "E-3005"


class TestComplete:
    @pytest.mark.asyncio
    async def test_request_shape_and_structured_decode(self, fake_upstream):
        fake_upstream.route(PROVIDER_PATH, (200, completion_body({"fields": {"a": 1}}, 42)))
        client = make_tool_client(fake_upstream)

        completion = await client.complete(PromptMaterial(system="s", user="u"))

        assert completion.content == {"fields": {"a": 1}}
        assert completion.total_tokens == 42
        body = fake_upstream.calls[0].body
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"] == [
            {"role": "system", "content": "s"},
            {"role": "user", "content": "u"},
        ]
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 4000
        assert body["response_format"] == {"type": "json_object"}
        assert fake_upstream.calls[0].headers["authorization"] == "Bearer provider-key"

    @pytest.mark.asyncio
    async def test_prompt_config_overrides(self, fake_upstream):
        fake_upstream.route(PROVIDER_PATH, (200, completion_body("plain text")))
        client = make_tool_client(fake_upstream)
        prompts = PromptMaterial.from_payload({
            "prompts": {"systemPrompt": "s", "userPrompt": "u"},
            "config": {"model": "gpt-4o", "temperature": 0.2, "maxTokens": 100, "response_format": "text"},
        })

        completion = await client.complete(prompts)

        assert completion.content == "plain text"
        body = fake_upstream.calls[0].body
        assert body["model"] == "gpt-4o"
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 100
        assert "response_format" not in body

    @pytest.mark.asyncio
    async def test_non_json_content_is_malformed(self, fake_upstream):
        fake_upstream.route(PROVIDER_PATH, (200, completion_body("not json")))
        client = make_tool_client(fake_upstream)

        with pytest.raises(MalformedUpstreamResponse):
            await client.complete(PromptMaterial(system="s", user="u"))

    @pytest.mark.asyncio
    async def test_bounded_by_configured_provider_timeout(self, fake_upstream):
        async def hang(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=completion_body({}), request=request)

        fake_upstream.route(PROVIDER_PATH, hang)
        client = make_tool_client(fake_upstream, make_settings(provider_timeout_seconds=0.05))

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await client.complete(PromptMaterial(system="s", user="u"))
        assert exc_info.value.code == "E-3005"
        assert exc_info.value.seconds == 0.05


class TestGenerate:
    @pytest.mark.asyncio
    async def test_two_call_sequence(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, tool_envelope(PROMPTS_PAYLOAD)))
        fake_upstream.route(PROVIDER_PATH, (200, completion_body({"fields": {"a": 1}})))
        client = make_tool_client(fake_upstream)
        ready = []

        outcome = await client.generate(TOOL, {"cardId": "c1"}, on_prompts_ready=ready.append)

        assert [c.path for c in fake_upstream.calls] == [tool_path(TOOL), PROVIDER_PATH]
        assert outcome.completion.content == {"fields": {"a": 1}}
        assert ready[0].user == "u"

    @pytest.mark.asyncio
    async def test_failed_tool_call_never_reaches_provider(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (500, "internal error"))
        fake_upstream.route(PROVIDER_PATH, (200, completion_body({"fields": {}})))
        client = make_tool_client(fake_upstream)

        with pytest.raises(UpstreamHttpError):
            await client.generate(TOOL, {})

        assert len(fake_upstream.calls_to(PROVIDER_PATH)) == 0

    @pytest.mark.asyncio
    async def test_logical_failure_never_reaches_provider(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, {"success": False, "error": "nope"}))
        client = make_tool_client(fake_upstream)

        with pytest.raises(UpstreamLogicalError):
            await client.generate(TOOL, {})

        assert len(fake_upstream.calls_to(PROVIDER_PATH)) == 0

    @pytest.mark.asyncio
    async def test_final_result_skips_provider(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, {"success": True, "fields": {"b": 2}}))
        client = make_tool_client(fake_upstream)

        outcome = await client.generate(TOOL, {})

        assert outcome.completion is None
        assert outcome.tool_payload["fields"] == {"b": 2}
        assert len(fake_upstream.calls) == 1

    @pytest.mark.asyncio
    async def test_cancelled_between_calls(self, fake_upstream):
        fake_upstream.route(tool_path(TOOL), (200, PROMPTS_PAYLOAD))
        fake_upstream.route(PROVIDER_PATH, (200, completion_body({})))
        client = make_tool_client(fake_upstream)
        token = CancellationToken()

        with pytest.raises(GenerationCancelled):
            await client.generate(
                TOOL, {}, token=token, on_prompts_ready=lambda _p: token.cancel()
            )

        assert len(fake_upstream.calls_to(PROVIDER_PATH)) == 0


class TestPromptMaterial:
    def test_missing_prompts_returns_none(self):
        assert PromptMaterial.from_payload({"success": True}) is None
        assert PromptMaterial.from_payload({"prompts": {"system": "s"}}) is None
