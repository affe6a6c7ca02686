"""Test helper utilities for upstream fakes."""

from tests.helpers.fake_upstream import (
    FakeUpstream,
    RecordedCall,
    completion_body,
    make_tool_client,
    make_settings,
    tool_envelope,
)

__all__ = [
    "FakeUpstream",
    "RecordedCall",
    "completion_body",
    "make_tool_client",
    "make_settings",
    "tool_envelope",
]
