"""FastAPI routes for URL and text analysis.

Non-streaming JSON endpoints. URL analysis is the highest-volume entry
point: it is rate limited per caller, served from the result cache when
possible, and bounds the tool call with an explicit timeout.
"""

import logging
from urllib.parse import urlparse

from fastapi import APIRouter, Depends

from stratagen.api.dependencies import (
    get_pipeline,
    get_rate_limiter,
    get_result_cache,
    get_settings,
)
from stratagen.api.middleware.auth import get_caller_id
from stratagen.api.schemas import TextAnalysisRequest, UrlAnalysisRequest
from stratagen.config import Settings
from stratagen.errors import RateLimitExceeded, ValidationError, format_message
from stratagen.services.analysis_cache import (
    ResultCache,
    analysis_fingerprint,
    is_cacheable,
)
from stratagen.services.generation_pipeline import (
    TEXT_ANALYSIS_TOOL,
    URL_ANALYSIS_TOOL,
    GenerationPipeline,
)
from stratagen.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/intelligence-processing", tags=["intelligence"])


def validate_url(url: str) -> None:
    """Require an absolute http(s) URL with a host.

    Raises:
        ValidationError: If the URL is malformed.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(
            format_message("E-2002", url=url),
            fields=["url"],
            error="Invalid URL format",
            code="E-2002",
        )


@router.post("/url")
async def analyze_url(
    body: UrlAnalysisRequest,
    caller_id: str = Depends(get_caller_id),
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
    cache: ResultCache = Depends(get_result_cache),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> dict:
    """Analyze a web page into intelligence cards.

    Raises:
        ValidationError: Malformed URL (400).
        RateLimitExceeded: Caller over quota (429).
        UpstreamTimeoutError: Tool call exceeded the bound (408).
        UpstreamError: Any other upstream failure (502).
    """
    validate_url(body.url)

    if not limiter.check(caller_id):
        raise RateLimitExceeded(limiter.limit, limiter.retry_after(caller_id))

    key = analysis_fingerprint(body.url, body.context, body.target_category)
    cached = cache.get(key)
    if cached is not None:
        logger.info("Serving cached analysis of %s for caller %s", body.url, caller_id)
        return {**cached, "cached": True}

    logger.info("URL analysis of %s for caller %s", body.url, caller_id)
    result = await pipeline.run_analysis(
        URL_ANALYSIS_TOOL,
        body.to_tool_payload(userId=caller_id),
        timeout=settings.url_analysis_timeout_seconds,
    )
    result = {**result, "url": body.url}

    if is_cacheable(result):
        cache.set(key, result)
    return result


@router.post("/text")
async def analyze_text(
    body: TextAnalysisRequest,
    caller_id: str = Depends(get_caller_id),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> dict:
    """Analyze raw text (notes, transcripts) into intelligence cards."""
    logger.info("Text analysis (%d chars) for caller %s", len(body.text), caller_id)
    return await pipeline.run_analysis(
        TEXT_ANALYSIS_TOOL, body.to_tool_payload(userId=caller_id)
    )
