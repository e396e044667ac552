"""Unit tests for the model gateway and the Gemini transport.

Tests cover:
- Retry with exponential backoff on transient failures
- Permanent failures short-circuit (single attempt)
- Exhaustion after max retries, per-attempt timeout
- Gemini status mapping and request construction (SDK mocked)
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from google.genai import errors, types

from fakes import FakeTransport, failure, ok
from pantry_chef.gateway.gateway import ModelGateway
from pantry_chef.gateway.gemini import GeminiTransport, classify_exception
from pantry_chef.models.errors import GatewayError, GatewayErrorKind
from pantry_chef.models.models import ImageExtractRequest, ResponseStatus, TextPromptRequest
from pantry_chef.normalizer.normalize import normalize
from pantry_chef.utils.config import GatewayConfig, RetryPolicy

POLICY = RetryPolicy(timeout=1.0, max_retries=2, base_delay=1.0, multiplier=2.0, max_jitter=0.5)


def _gateway(transport, sleep, rng=lambda: 0.0, policy=POLICY):
    return ModelGateway(transport, policy, sleep=sleep, rng=rng)


class TestModelGatewayRetries:
    """Tests for retry/backoff policy."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, no_sleep):
        transport = FakeTransport(ok("[]"))
        text = await _gateway(transport, no_sleep).generate_recipes(normalize(["egg"]))
        assert text == "[]"
        assert transport.calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_two_transient_failures_then_success(self, no_sleep):
        """Caller only sees the final success."""
        transport = FakeTransport(
            failure(ResponseStatus.TRANSIENT_ERROR),
            failure(ResponseStatus.RATE_LIMITED),
            ok("recipes"),
        )
        text = await _gateway(transport, no_sleep).generate_recipes(normalize(["egg"]))
        assert text == "recipes"
        assert transport.calls == 3

    @pytest.mark.asyncio
    async def test_backoff_doubles_with_jitter(self, no_sleep):
        transport = FakeTransport(failure(ResponseStatus.TRANSIENT_ERROR), failure(ResponseStatus.TRANSIENT_ERROR), ok("x"))
        await _gateway(transport, no_sleep, rng=lambda: 1.0).generate_recipes(normalize(["egg"]))
        assert no_sleep.delays == [1.5, 2.5]

    @pytest.mark.asyncio
    async def test_permanent_failure_single_attempt(self, no_sleep):
        transport = FakeTransport(failure(ResponseStatus.PERMANENT_ERROR, "API key not valid"))
        with pytest.raises(GatewayError) as exc:
            await _gateway(transport, no_sleep).generate_recipes(normalize(["egg"]))
        assert exc.value.kind is GatewayErrorKind.PERMANENT
        assert exc.value.attempts == 1
        assert transport.calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_permanent_after_transient_stops(self, no_sleep):
        transport = FakeTransport(failure(ResponseStatus.TRANSIENT_ERROR), failure(ResponseStatus.PERMANENT_ERROR))
        with pytest.raises(GatewayError) as exc:
            await _gateway(transport, no_sleep).generate_recipes(normalize(["egg"]))
        assert exc.value.kind is GatewayErrorKind.PERMANENT
        assert transport.calls == 2

    @pytest.mark.asyncio
    async def test_exhausted_after_max_retries(self, no_sleep):
        transport = FakeTransport(failure(ResponseStatus.RATE_LIMITED))
        with pytest.raises(GatewayError) as exc:
            await _gateway(transport, no_sleep).generate_recipes(normalize(["egg"]))
        assert exc.value.kind is GatewayErrorKind.EXHAUSTED
        assert exc.value.last_failure is GatewayErrorKind.RATE_LIMITED
        assert exc.value.attempts == 3
        assert transport.calls == 3
        assert len(no_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_zero_retries(self, no_sleep):
        transport = FakeTransport(failure(ResponseStatus.TRANSIENT_ERROR))
        policy = RetryPolicy(timeout=1.0, max_retries=0)
        with pytest.raises(GatewayError) as exc:
            await _gateway(transport, no_sleep, policy=policy).generate_recipes(normalize(["egg"]))
        assert exc.value.kind is GatewayErrorKind.EXHAUSTED
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_is_retried_then_exhausts(self, no_sleep):
        transport = FakeTransport(ok("late"), delay=0.5)
        policy = RetryPolicy(timeout=0.01, max_retries=1, base_delay=0.0, max_jitter=0.0)
        with pytest.raises(GatewayError) as exc:
            await _gateway(transport, no_sleep, policy=policy).generate_recipes(normalize(["egg"]))
        assert exc.value.kind is GatewayErrorKind.EXHAUSTED
        assert exc.value.last_failure is GatewayErrorKind.TIMEOUT
        assert transport.calls == 2


class TestModelGatewayRequests:
    """Tests for the requests handed to the transport."""

    @pytest.mark.asyncio
    async def test_generate_sends_display_names(self, no_sleep):
        transport = FakeTransport(ok("[]"))
        await _gateway(transport, no_sleep).generate_recipes(normalize(["Egg", "egg", "Flour "]))
        request = transport.requests[0]
        assert isinstance(request, TextPromptRequest)
        assert request.ingredients == ("Egg", "Flour")

    @pytest.mark.asyncio
    async def test_extract_sends_image(self, no_sleep, png_bytes):
        transport = FakeTransport(ok("egg, milk"))
        text = await _gateway(transport, no_sleep).extract_ingredients(png_bytes, "image/png")
        assert text == "egg, milk"
        request = transport.requests[0]
        assert isinstance(request, ImageExtractRequest)
        assert request.mime_type == "image/png"
        assert request.image_bytes == png_bytes

    @pytest.mark.asyncio
    async def test_response_text_is_not_inspected(self, no_sleep):
        transport = FakeTransport(ok("definitely not json"))
        text = await _gateway(transport, no_sleep).generate_recipes(normalize(["egg"]))
        assert text == "definitely not json"


def _api_error(code: int) -> errors.APIError:
    return errors.APIError(code, {"error": {"message": f"HTTP {code}", "status": "ERR"}})


class TestClassifyException:
    """Tests for SDK exception → status mapping."""

    @pytest.mark.parametrize(
        "code,status",
        [
            (429, ResponseStatus.RATE_LIMITED),
            (500, ResponseStatus.TRANSIENT_ERROR),
            (503, ResponseStatus.TRANSIENT_ERROR),
            (408, ResponseStatus.TRANSIENT_ERROR),
            (400, ResponseStatus.PERMANENT_ERROR),
            (401, ResponseStatus.PERMANENT_ERROR),
            (403, ResponseStatus.PERMANENT_ERROR),
        ],
    )
    def test_api_error_codes(self, code, status):
        assert classify_exception(_api_error(code)) is status

    def test_network_errors_are_transient(self):
        assert classify_exception(httpx.ConnectError("refused")) is ResponseStatus.TRANSIENT_ERROR
        assert classify_exception(ConnectionError()) is ResponseStatus.TRANSIENT_ERROR

    def test_keyword_fallback(self):
        assert classify_exception(RuntimeError("Service temporarily unavailable")) is ResponseStatus.TRANSIENT_ERROR
        assert classify_exception(RuntimeError("invalid argument")) is ResponseStatus.PERMANENT_ERROR


class TestGeminiTransport:
    """Tests for GeminiTransport with a mocked SDK client."""

    def _transport(self, client):
        return GeminiTransport(GatewayConfig(api_key="test-key", recipe_count=2), client=client)

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            GeminiTransport(GatewayConfig(api_key=""))

    @pytest.mark.asyncio
    async def test_text_request_uses_schema_and_prompt(self):
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text='[{"title": "x"}]', prompt_feedback=None)

        response = await self._transport(client).send(TextPromptRequest(ingredients=("egg", "Flour")))

        assert response.status is ResponseStatus.OK
        assert response.text == '[{"title": "x"}]'
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-3-flash-preview"
        assert "egg, Flour" in kwargs["contents"]
        assert "Generate 2 creative recipes" in kwargs["contents"]
        assert kwargs["config"].response_mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_image_request_uses_vision_model(self, jpeg_bytes):
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text="egg, milk", prompt_feedback=None)

        response = await self._transport(client).send(ImageExtractRequest(image_bytes=jpeg_bytes))

        assert response.text == "egg, milk"
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash-image"
        assert len(kwargs["contents"]) == 2

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_status(self):
        client = MagicMock()
        client.models.generate_content.side_effect = _api_error(429)

        response = await self._transport(client).send(TextPromptRequest(ingredients=("egg",)))

        assert response.status is ResponseStatus.RATE_LIMITED
        assert "429" in response.detail

    @pytest.mark.asyncio
    async def test_blocked_prompt_is_permanent(self):
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(
            text=None, prompt_feedback=MagicMock(block_reason="SAFETY")
        )

        response = await self._transport(client).send(TextPromptRequest(ingredients=("egg",)))

        assert response.status is ResponseStatus.PERMANENT_ERROR
        assert "SAFETY" in response.detail

    @pytest.mark.asyncio
    async def test_empty_text_is_ok_with_empty_payload(self):
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text=None, prompt_feedback=None)

        response = await self._transport(client).send(TextPromptRequest(ingredients=("egg",)))

        assert response.status is ResponseStatus.OK
        assert response.text == ""

    @pytest.mark.asyncio
    @patch("pantry_chef.gateway.gemini.asyncio.to_thread")
    async def test_call_runs_in_worker_thread(self, mock_to_thread):
        client = MagicMock()
        mock_to_thread.return_value = MagicMock(text="[]", prompt_feedback=None, candidates=[])

        await self._transport(client).send(TextPromptRequest(ingredients=("egg",)))

        assert mock_to_thread.call_args.args[0] is client.models.generate_content

    @pytest.mark.parametrize("reason", ["SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"])
    @pytest.mark.asyncio
    async def test_candidate_stopped_by_policy_is_permanent(self, reason):
        client = MagicMock()
        candidate = MagicMock(finish_reason=types.FinishReason[reason])
        client.models.generate_content.return_value = MagicMock(
            text=None, prompt_feedback=None, candidates=[candidate]
        )

        response = await self._transport(client).send(TextPromptRequest(ingredients=("egg",)))

        assert response.status is ResponseStatus.PERMANENT_ERROR
        assert reason in response.detail

    @pytest.mark.asyncio
    async def test_normal_finish_reason_is_ok(self):
        client = MagicMock()
        candidate = MagicMock(finish_reason=types.FinishReason.STOP)
        client.models.generate_content.return_value = MagicMock(
            text="[]", prompt_feedback=None, candidates=[candidate]
        )

        response = await self._transport(client).send(TextPromptRequest(ingredients=("egg",)))

        assert response.status is ResponseStatus.OK

    @patch("pantry_chef.gateway.gemini.genai.Client")
    def test_client_gets_per_attempt_http_timeout(self, mock_client_class):
        config = GatewayConfig(api_key="test-key", retry=RetryPolicy(timeout=12.5))

        GeminiTransport(config)

        kwargs = mock_client_class.call_args.kwargs
        assert kwargs["api_key"] == "test-key"
        assert kwargs["http_options"].timeout == 12500
