"""Gemini transport for the model gateway.

Makes exactly one call per request through the google-genai SDK and reports
the outcome as a GatewayResponse status. Retries and timeouts belong to
ModelGateway. The SDK client is synchronous here, so calls run in a worker
thread (asyncio.to_thread) to keep the event loop free.

Status mapping:
- HTTP 429 → rateLimited
- HTTP 408 / 5xx, network errors, timeouts → transientError
- other 4xx (bad key, malformed request), blocked prompts, candidates stopped
  for safety or policy reasons → permanentError

A timed-out attempt cannot interrupt its worker thread, so the SDK client is
given the same per-attempt timeout as an HTTP timeout. The abandoned call then
ends on its own instead of overlapping the retry.
"""

import asyncio
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors, types

from pantry_chef.models.models import (
    GatewayRequest,
    GatewayResponse,
    ImageExtractRequest,
    ResponseStatus,
    TextPromptRequest,
)
from pantry_chef.prompts.prompts import IMAGE_EXTRACTION_PROMPT, RECIPE_SCHEMA, get_recipe_prompt
from pantry_chef.utils.config import GatewayConfig
from pantry_chef.utils.logger import logger

TRANSIENT_KEYWORDS = (
    "timeout",
    "timed out",
    "connection",
    "temporarily",
    "unavailable",
    "429",
    "500",
    "502",
    "503",
    "504",
    "retryable",
)

# Candidate finish reasons that mean the content was refused
BLOCKING_FINISH_REASONS = frozenset({"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"})


def classify_exception(exc: BaseException) -> ResponseStatus:
    """Map an SDK or network exception to a transport status."""
    if isinstance(exc, errors.APIError):
        code = getattr(exc, "code", None) or 0
        if code == 429:
            return ResponseStatus.RATE_LIMITED
        if code == 408 or code >= 500:
            return ResponseStatus.TRANSIENT_ERROR
        return ResponseStatus.PERMANENT_ERROR
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError, ConnectionError, TimeoutError)):
        return ResponseStatus.TRANSIENT_ERROR

    error_str = str(exc).lower()
    if any(keyword in error_str for keyword in TRANSIENT_KEYWORDS):
        return ResponseStatus.TRANSIENT_ERROR
    return ResponseStatus.PERMANENT_ERROR


def _block_reason(response: Any) -> Optional[str]:
    feedback = getattr(response, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None) if feedback else None
    return str(reason) if reason else None


def _blocking_finish_reason(response: Any) -> Optional[str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    name = getattr(reason, "name", reason)
    if isinstance(name, str) and name.upper() in BLOCKING_FINISH_REASONS:
        return name.upper()
    return None


class GeminiTransport:
    """ModelTransport backed by Google Gemini."""

    def __init__(self, config: GatewayConfig, client: Optional[genai.Client] = None) -> None:
        if not config.api_key and client is None:
            raise ValueError("GEMINI_API_KEY is required")
        self.config = config
        self.client = client or genai.Client(
            api_key=config.api_key,
            http_options=types.HttpOptions(timeout=int(config.retry.timeout * 1000)),
        )

    def _build_call(self, request: GatewayRequest) -> dict[str, Any]:
        if isinstance(request, TextPromptRequest):
            return {
                "model": self.config.text_model,
                "contents": get_recipe_prompt(list(request.ingredients), self.config.recipe_count),
                "config": types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=RECIPE_SCHEMA,
                    temperature=self.config.temperature,
                    max_output_tokens=self.config.max_output_tokens,
                ),
            }
        if isinstance(request, ImageExtractRequest):
            return {
                "model": self.config.image_model,
                "contents": [
                    types.Part.from_bytes(data=request.image_bytes, mime_type=request.mime_type),
                    IMAGE_EXTRACTION_PROMPT,
                ],
            }
        raise TypeError(f"Unsupported gateway request: {type(request).__name__}")

    async def send(self, request: GatewayRequest) -> GatewayResponse:
        call = self._build_call(request)
        try:
            response = await asyncio.to_thread(self.client.models.generate_content, **call)
        except Exception as e:
            status = classify_exception(e)
            logger.debug(f"Gemini {request.kind.value} call failed ({status.value}): {e}")
            return GatewayResponse(status=status, detail=f"{type(e).__name__}: {e}")

        blocked = _block_reason(response)
        if blocked:
            return GatewayResponse(status=ResponseStatus.PERMANENT_ERROR, detail=f"prompt blocked: {blocked}")

        stopped = _blocking_finish_reason(response)
        if stopped:
            return GatewayResponse(status=ResponseStatus.PERMANENT_ERROR, detail=f"response blocked: {stopped}")

        return GatewayResponse(status=ResponseStatus.OK, text=response.text or "")
