"""Model gateway: timeout, retry and backoff around the model transport.

The gateway is a transport boundary. It turns transport outcomes into either
raw response text or a GatewayError, and never looks inside the text.

Retry Strategy:
- Transient failures (timeout, rate limit, 5xx-like): retried up to
  ``RetryPolicy.max_retries`` more times with exponential backoff plus jitter
- Permanent failures (auth, malformed request, content policy): raised at once
- Retries used up: GatewayError(EXHAUSTED) carrying the last failure kind
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Protocol

from pantry_chef.models.errors import GatewayError, GatewayErrorKind
from pantry_chef.models.models import (
    GatewayRequest,
    GatewayResponse,
    ImageExtractRequest,
    ResponseStatus,
    TextPromptRequest,
)
from pantry_chef.normalizer.normalize import IngredientSet
from pantry_chef.utils.config import RetryPolicy
from pantry_chef.utils.logger import logger

_STATUS_KINDS = {
    ResponseStatus.RATE_LIMITED: GatewayErrorKind.RATE_LIMITED,
    ResponseStatus.TRANSIENT_ERROR: GatewayErrorKind.TRANSIENT,
    ResponseStatus.PERMANENT_ERROR: GatewayErrorKind.PERMANENT,
}


class ModelTransport(Protocol):
    """One request/response exchange with the model provider.

    Implementations report failures through ``GatewayResponse.status`` and do
    not retry.
    """

    async def send(self, request: GatewayRequest) -> GatewayResponse: ...


class ModelGateway:
    """Uniform request interface over a ModelTransport with retry policy."""

    def __init__(
        self,
        transport: ModelTransport,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    async def generate_recipes(self, ingredients: IngredientSet) -> str:
        """Ask the model for recipes; returns the raw response text."""
        return await self._call(TextPromptRequest(ingredients=tuple(ingredients.display())))

    async def extract_ingredients(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        """Ask the vision model which ingredients a photo shows; returns raw text."""
        return await self._call(ImageExtractRequest(image_bytes=image_bytes, mime_type=mime_type))

    async def _attempt(self, request: GatewayRequest) -> tuple[GatewayResponse, Optional[GatewayErrorKind]]:
        """Single bounded attempt; the kind is None on success."""
        try:
            response = await asyncio.wait_for(self.transport.send(request), timeout=self.retry_policy.timeout)
        except asyncio.TimeoutError:
            timed_out = GatewayResponse(
                status=ResponseStatus.TRANSIENT_ERROR,
                detail=f"timed out after {self.retry_policy.timeout:g}s",
            )
            return timed_out, GatewayErrorKind.TIMEOUT
        if response.ok:
            return response, None
        return response, _STATUS_KINDS[response.status]

    async def _call(self, request: GatewayRequest) -> str:
        policy = self.retry_policy
        max_attempts = policy.max_retries + 1
        last_kind = GatewayErrorKind.TRANSIENT
        last_detail = None

        for attempt in range(max_attempts):
            response, kind = await self._attempt(request)
            if kind is None:
                if attempt:
                    logger.info(f"Model call succeeded on attempt {attempt + 1}/{max_attempts}")
                return response.text

            if not kind.retryable:
                logger.warning(f"Permanent model failure on {request.kind.value}: {response.detail}")
                raise GatewayError(
                    GatewayErrorKind.PERMANENT,
                    f"Model request rejected: {response.detail or 'permanent error'}",
                    attempts=attempt + 1,
                )

            last_kind, last_detail = kind, response.detail
            if attempt < max_attempts - 1:
                delay = policy.delay_for(attempt, self._rng())
                logger.debug(
                    f"{kind.value} on {request.kind.value}, retrying in {delay:.2f}s: {response.detail}",
                    extra={"attempt": attempt + 1},
                )
                await self._sleep(delay)

        logger.warning(f"Model call failed after {max_attempts} attempts ({last_kind.value}): {last_detail}")
        raise GatewayError(
            GatewayErrorKind.EXHAUSTED,
            f"Model unavailable after {max_attempts} attempts ({last_kind.value})",
            attempts=max_attempts,
            last_failure=last_kind,
        )
