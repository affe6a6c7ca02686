"""Pydantic schemas for API request/response validation.

Request bodies use camelCase on the wire (``cardId``, ``blueprintType``)
and are forwarded to the tool service in the same shape.
"""

import json
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    """Base for request bodies exchanged in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_tool_payload(self, **extra: Any) -> dict:
        """Serialize for the tool service, omitting unset optional fields."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        payload.update(extra)
        return payload


# Generation requests


class FieldGenerationRequest(CamelModel):
    """Request schema for streaming field generation."""

    card_id: NonBlank
    blueprint_type: NonBlank
    card_title: NonBlank
    strategy_id: int | str | None = None
    existing_fields: dict[str, Any] | None = None


class TranscriptEditRequest(CamelModel):
    """Request schema for a transcript-driven card edit."""

    card_id: NonBlank
    blueprint_type: NonBlank
    card_title: NonBlank
    transcript: NonBlank
    existing_fields: dict[str, Any] | None = None


class UrlAnalysisRequest(CamelModel):
    """Request schema for URL analysis."""

    url: NonBlank
    context: str | None = None
    target_category: str | None = None
    target_groups: list[str] | None = None


class TextAnalysisRequest(CamelModel):
    """Request schema for raw text analysis."""

    text: NonBlank
    context: str | None = None
    type: str | None = None
    target_category: str | None = None
    target_groups: list[str] | None = None


# Session schemas


class SessionResponse(BaseModel):
    """Snapshot of one generation session."""

    id: str
    title: str
    phase: str
    step: str
    progress: int
    message: str
    error_code: str | None = None
    duration_ms: int | None = None


class SessionListResponse(BaseModel):
    """Current session and recent terminal sessions."""

    current: SessionResponse | None
    history: list[SessionResponse]
    active_count: int


class IndicatorPosition(BaseModel):
    """Opaque UI position of the progress indicator."""

    x: float
    y: float


# Automation schemas


class ExecutionResponse(BaseModel):
    """Response schema for an automation execution row."""

    id: str
    rule_id: str
    user_id: str
    trigger_type: str
    status: str
    cards_created: int
    tokens_used: int
    cost_incurred: float
    processing_time_ms: int | None = None
    error_message: str | None = None
    error_details: dict | None = None
    started_at: str
    completed_at: str | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("error_details", mode="before")
    @classmethod
    def _parse_error_details(cls, v: str | dict | None) -> dict | None:
        """Parse error_details from the JSON text stored in the database."""
        if v is None or isinstance(v, dict):
            return v
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError:
            return {"raw": v}
        return parsed if isinstance(parsed, dict) else {"value": parsed}


class ExecutionListResponse(BaseModel):
    executions: list[ExecutionResponse]
    total: int

