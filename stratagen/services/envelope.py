"""Tagged-result parsers for upstream response bodies.

The tool-execution service answers either with a wrapped envelope
``{"content": [{"text": "<JSON string>"}]}`` or with the payload directly.
The generation provider answers with chat-completion JSON whose text lives
in ``choices[0].message.content``.

Parsers here never raise: they return ``Parsed`` or ``ParseFailure`` and
leave the decision of which error to raise to the caller.
"""

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Parsed:
    """Successfully decoded body.

    Attributes:
        payload: Decoded JSON value.
        wrapped: True when the payload came out of a content envelope.
    """

    payload: Any
    wrapped: bool = False


@dataclass(frozen=True)
class ParseFailure:
    """Body could not be decoded in any accepted form."""

    reason: str


ParseResult = Parsed | ParseFailure


@dataclass(frozen=True)
class CompletionText:
    """Text and usage extracted from a chat-completion body."""

    text: str
    usage: dict = field(default_factory=dict)
    model: str | None = None


def _wrapped_text(body: Any) -> str | None:
    """Return the envelope's inner JSON text, or None if not wrapped."""
    if not isinstance(body, dict):
        return None
    content = body.get("content")
    if not isinstance(content, list) or not content:
        return None
    first = content[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    return text if isinstance(text, str) and text else None


def parse_tool_envelope(raw: str) -> ParseResult:
    """Decode a tool-execution service body, wrapped form first.

    Args:
        raw: Response body text.

    Returns:
        Parsed with the inner payload (wrapped) or the body itself (direct),
        or ParseFailure when neither decodes as JSON.
    """
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        return ParseFailure(f"body is not JSON: {e}")

    inner = _wrapped_text(body)
    if inner is not None:
        try:
            return Parsed(json.loads(inner), wrapped=True)
        except json.JSONDecodeError as e:
            return ParseFailure(f"envelope text is not JSON: {e}")

    return Parsed(body, wrapped=False)


def parse_completion(raw: str) -> CompletionText | ParseFailure:
    """Extract ``choices[0].message.content`` from a provider body."""
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        return ParseFailure(f"body is not JSON: {e}")

    try:
        text = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ParseFailure("no choices[0].message.content in response")
    if not isinstance(text, str) or not text:
        return ParseFailure("empty completion content")

    usage = body.get("usage") if isinstance(body.get("usage"), dict) else {}
    return CompletionText(text=text, usage=usage, model=body.get("model"))


def parse_structured_content(text: str) -> ParseResult:
    """JSON-decode completion text when structured output was requested."""
    try:
        return Parsed(json.loads(text))
    except json.JSONDecodeError as e:
        return ParseFailure(f"completion content is not JSON: {e}")
