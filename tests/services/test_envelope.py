"""Tests for the tagged-result envelope parsers."""

import json

from stratagen.services.envelope import (
    CompletionText,
    Parsed,
    ParseFailure,
    parse_completion,
    parse_structured_content,
    parse_tool_envelope,
)


class TestParseToolEnvelope:
    def test_wrapped_form(self):
        raw = json.dumps({"content": [{"text": json.dumps({"success": True, "x": 1})}]})
        result = parse_tool_envelope(raw)

        assert isinstance(result, Parsed)
        assert result.wrapped is True
        assert result.payload == {"success": True, "x": 1}

    def test_direct_form(self):
        result = parse_tool_envelope(json.dumps({"success": True, "prompts": {"user": "u"}}))

        assert isinstance(result, Parsed)
        assert result.wrapped is False
        assert result.payload["prompts"] == {"user": "u"}

    def test_content_without_text_is_direct(self):
        result = parse_tool_envelope(json.dumps({"content": "plain"}))
        assert isinstance(result, Parsed)
        assert result.payload == {"content": "plain"}

    def test_non_json_body_is_failure(self):
        result = parse_tool_envelope("<html>Bad Gateway</html>")
        assert isinstance(result, ParseFailure)

    def test_wrapped_text_not_json_is_failure(self):
        raw = json.dumps({"content": [{"text": "not json {"}]})
        assert isinstance(parse_tool_envelope(raw), ParseFailure)


class TestParseCompletion:
    def test_extracts_text_and_usage(self):
        raw = json.dumps({
            "model": "gpt-4o-mini",
            "choices": [{"message": {"content": '{"fields": {}}'}}],
            "usage": {"total_tokens": 12},
        })
        result = parse_completion(raw)

        assert isinstance(result, CompletionText)
        assert result.text == '{"fields": {}}'
        assert result.usage == {"total_tokens": 12}
        assert result.model == "gpt-4o-mini"

    def test_missing_choices_is_failure(self):
        assert isinstance(parse_completion(json.dumps({"choices": []})), ParseFailure)

    def test_empty_content_is_failure(self):
        raw = json.dumps({"choices": [{"message": {"content": ""}}]})
        assert isinstance(parse_completion(raw), ParseFailure)


class TestParseStructuredContent:
    def test_valid_json(self):
        result = parse_structured_content('{"a": 1}')
        assert isinstance(result, Parsed)
        assert result.payload == {"a": 1}

    def test_invalid_json(self):
        assert isinstance(parse_structured_content("Sure! Here are..."), ParseFailure)
