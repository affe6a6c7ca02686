"""Generation pipeline shared by the interactive and scheduled paths.

Interactive flows drive a GenerationSession through named progress steps
around the two-call sequence; the stream responder observes the session.
Analysis and automation flows run headlessly and return summaries.

Example:
    pipeline = GenerationPipeline(client)
    await pipeline.run_interactive(session, token, FIELD_GENERATION_FLOW, payload)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from stratagen.errors import GenerationCancelled, UpstreamError, format_message
from stratagen.services.cancellation import CancellationToken
from stratagen.services.generation_session import GenerationSession
from stratagen.services.tool_client import (
    Completion,
    GenerationOutcome,
    PromptMaterial,
    ToolInvocationClient,
)

logger = logging.getLogger(__name__)

FIELD_GENERATION_TOOL = "generate_edit_mode_content"
TRANSCRIPT_EDIT_TOOL = "process_voice_edit_content"
URL_ANALYSIS_TOOL = "analyze_url"
TEXT_ANALYSIS_TOOL = "process_intelligence_text"
AUTOMATION_TOOL = "generate_automation_intelligence"

# Approximate provider pricing used for reported cost.
COST_PER_1K_TOKENS = 0.03


@dataclass(frozen=True)
class ProgressStep:
    """One named progress point reported to the session."""

    step: str
    progress: int
    message: str


@dataclass(frozen=True)
class InteractiveFlow:
    """Progress plan for one streaming endpoint.

    Attributes:
        tool_name: Tool invoked by call 1.
        title: Session title shown to the caller.
        before_call: Steps reported before call 1 is issued.
        prompts_ready: Step reported once call 1 returned prompt material.
        finalizing: Step reported after the content is available.
        complete_message: Message of the terminal ``complete`` transition.
    """

    tool_name: str
    title: str
    before_call: tuple[ProgressStep, ...]
    prompts_ready: ProgressStep
    finalizing: ProgressStep
    complete_message: str = "Processing complete!"


FIELD_GENERATION_FLOW = InteractiveFlow(
    tool_name=FIELD_GENERATION_TOOL,
    title="Generating card fields",
    before_call=(
        ProgressStep("context_gathering", 10, "Gathering strategy context..."),
        ProgressStep("configuring", 30, "Fetching AI configuration..."),
        ProgressStep("generating", 50, "Generating content with AI..."),
    ),
    prompts_ready=ProgressStep("generating", 70, "Writing field content..."),
    finalizing=ProgressStep("optimizing", 90, "Optimizing field coherence..."),
    complete_message="Fields generated",
)

TRANSCRIPT_EDIT_FLOW = InteractiveFlow(
    tool_name=TRANSCRIPT_EDIT_TOOL,
    title="Applying voice edit",
    before_call=(
        ProgressStep("analyzing", 20, "Analyzing transcript..."),
        ProgressStep("processing", 50, "Processing requested changes..."),
    ),
    prompts_ready=ProgressStep("processing", 70, "Rewriting card content..."),
    finalizing=ProgressStep("finalizing", 90, "Finalizing edits..."),
    complete_message="Voice edit applied",
)


@dataclass(frozen=True)
class AutomationOutcome:
    """Metrics recorded on a completed execution row."""

    cards_created: int
    tokens_used: int
    cost: float
    result: dict = field(default_factory=dict)


def estimate_cost(tokens: int) -> float:
    return round(tokens / 1000 * COST_PER_1K_TOKENS, 6)


def _content_result(content: Any) -> dict:
    if isinstance(content, dict):
        return dict(content)
    return {"content": content}


def _extract_cards(content: Any) -> list:
    """Cards from provider output: a bare list, or ``cards``/``insights``."""
    if isinstance(content, list):
        return content
    if isinstance(content, dict):
        cards = content.get("cards") or content.get("insights") or []
        return cards if isinstance(cards, list) else []
    return []


def _int_metric(payload: dict, key: str) -> int:
    value = payload.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def summarize_completion(completion: Completion) -> dict:
    """Summarize analysis output into the card-count result shape."""
    cards = _extract_cards(completion.content)
    tokens = completion.total_tokens
    return {
        "success": True,
        "message": f"Successfully analyzed content and created {len(cards)} intelligence cards",
        "cardsCreated": len(cards),
        "cards": cards,
        "tokensUsed": tokens,
        "cost": estimate_cost(tokens),
    }


class GenerationPipeline:
    """Runs generation requests against a ToolInvocationClient."""

    def __init__(self, client: ToolInvocationClient) -> None:
        self._client = client

    async def run_interactive(
        self,
        session: GenerationSession,
        token: CancellationToken,
        flow: InteractiveFlow,
        payload: dict,
    ) -> None:
        """Drive ``session`` from its first step to a terminal phase.

        Never raises for upstream failures: they end the session in
        ``error`` (or ``cancelled``) and reach the caller as frames.

        Args:
            session: Started session owned by this flow.
            token: Cancellation token for the session.
            flow: Progress plan and tool for the endpoint.
            payload: Tool request body.
        """
        try:
            for step in flow.before_call:
                token.raise_if_cancelled()
                session.advance(step.progress, step.message, step.step)

            def _on_prompts_ready(_prompts: PromptMaterial) -> None:
                ready = flow.prompts_ready
                session.advance(ready.progress, ready.message, ready.step)

            outcome = await self._client.generate(
                flow.tool_name,
                payload,
                token=token,
                on_prompts_ready=_on_prompts_ready,
            )
            token.raise_if_cancelled()

            final = flow.finalizing
            session.advance(final.progress, final.message, final.step)
            session.complete(flow.complete_message, self._interactive_result(outcome))
        except GenerationCancelled:
            session.cancel()
        except asyncio.CancelledError:
            session.cancel()
            raise
        except UpstreamError as e:
            logger.warning("Session %s failed (%s): %s", session.id, e.code, e.message)
            session.error(e.message, e.code)
        except Exception as e:
            logger.exception("Unexpected failure in session %s", session.id)
            session.error(format_message("E-4002", message=str(e)), "E-4002")

    @staticmethod
    def _interactive_result(outcome: GenerationOutcome) -> dict:
        if outcome.completion is None:
            result = dict(outcome.tool_payload)
        else:
            result = _content_result(outcome.completion.content)
            if outcome.completion.total_tokens:
                result.setdefault("tokensUsed", outcome.completion.total_tokens)
        result.setdefault("success", True)
        return result

    async def run_analysis(
        self,
        tool_name: str,
        payload: dict,
        *,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> dict:
        """Analyze content into intelligence cards.

        Call 2 runs only when call 1 returns prompt material without a
        ``cardsCreated`` count; otherwise call 1's payload is the result.

        Args:
            tool_name: Analysis tool for call 1.
            payload: Tool request body.
            token: Optional cancellation token.
            timeout: Upper bound in seconds for call 1.

        Returns:
            Result dict with ``success``, ``cardsCreated`` and related fields.

        Raises:
            UpstreamError: Any normalized upstream failure.
        """
        tool_payload = await self._client.call_tool(
            tool_name, payload, token=token, timeout=timeout
        )
        if tool_payload.get("cardsCreated"):
            return tool_payload

        prompts = PromptMaterial.from_payload(tool_payload)
        if prompts is None:
            return tool_payload

        logger.info("Tool %s returned prompt material; requesting completion", tool_name)
        completion = await self._client.complete(prompts, token=token)
        return summarize_completion(completion)

    async def run_automation(self, payload: dict) -> AutomationOutcome:
        """Run the automation tool headlessly for one rule.

        Raises:
            UpstreamError: Any normalized upstream failure.
        """
        outcome = await self._client.generate(AUTOMATION_TOOL, payload)
        if outcome.completion is not None:
            summary = summarize_completion(outcome.completion)
            return AutomationOutcome(
                cards_created=summary["cardsCreated"],
                tokens_used=summary["tokensUsed"],
                cost=summary["cost"],
                result=summary,
            )

        result = outcome.tool_payload
        cost = result.get("cost", 0)
        return AutomationOutcome(
            cards_created=_int_metric(result, "cardsCreated"),
            tokens_used=_int_metric(result, "tokensUsed"),
            cost=float(cost) if isinstance(cost, (int, float)) and not isinstance(cost, bool) else 0.0,
            result=result,
        )
