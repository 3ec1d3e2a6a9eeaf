"""
test_base.py - Provider 공통 계약 테스트

검증:
- 설정 fail-fast (API 키 / base_url 누락)
- 공통 재시도 정책: 재시도 대상, 횟수, 지연 1/2/4
- 에러 정규화 (ProviderError만 밖으로)
- validate_api_key: 401/403만 False
- list_models: 실패 시 정적 카탈로그
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from paper_analysis.providers.base import (
    CONNECTION_RESET,
    TIMED_OUT,
    ChatMessage,
    ChatRequest,
    ChatRole,
    ProviderConfig,
    ProviderError,
    ProviderKind,
    TokenUsage,
    TransportError,
    is_retryable_error,
    mask_api_key,
)
from paper_analysis.providers.custom import CustomProvider


@pytest.fixture
def request_():
    return ChatRequest(
        model="stub-model",
        messages=(
            ChatMessage(ChatRole.SYSTEM, "You are helpful."),
            ChatMessage(ChatRole.USER, "Summarize."),
        ),
    )


def make_config(max_retries: int = 3, timeout_ms: int = 60_000) -> ProviderConfig:
    return ProviderConfig(
        kind=ProviderKind.CUSTOM,
        api_key="sk-test-key-123456",
        base_url="http://stub.invalid",
        default_model="stub-model",
        max_retries=max_retries,
        timeout_ms=timeout_ms,
    )


# =============================================================================
# Configuration
# =============================================================================

class TestProviderConfig:
    """ProviderConfig / 생성 시 검증."""

    def test_kind_coerced_from_string(self):
        config = ProviderConfig(kind="deepseek", api_key="k")
        assert config.kind is ProviderKind.DEEPSEEK

    def test_to_dict_masks_api_key(self):
        config = make_config()
        assert config.to_dict()["api_key"] == "sk-t...3456"

    def test_mask_short_key(self):
        assert mask_api_key("short") == "***"
        assert mask_api_key("") == ""

    def test_with_default_model_returns_copy(self):
        config = make_config()
        updated = config.with_default_model("other")

        assert updated.default_model == "other"
        assert config.default_model == "stub-model"

    def test_missing_api_key_fails_fast(self, stub_provider_cls):
        """API 키 없으면 네트워크 호출 전에 실패."""
        with pytest.raises(ProviderError) as exc_info:
            stub_provider_cls(ProviderConfig(kind=ProviderKind.CUSTOM, api_key=""))

        assert exc_info.value.code == "API_KEY_MISSING"

    def test_custom_requires_base_url(self):
        with pytest.raises(ProviderError) as exc_info:
            CustomProvider(ProviderConfig(kind=ProviderKind.CUSTOM, api_key="k"))

        assert exc_info.value.code == "BASE_URL_MISSING"


class TestChatRequest:
    """ChatRequest 헬퍼."""

    def test_system_prompt_and_conversation(self, request_):
        assert request_.system_prompt == "You are helpful."
        assert [m.role for m in request_.conversation()] == [ChatRole.USER]

    def test_no_system_prompt(self):
        request = ChatRequest(model="m", messages=[ChatMessage("user", "hi")])
        assert request.system_prompt is None
        assert isinstance(request.messages, tuple)


class TestTokenUsage:
    """OpenAI 호환 usage 변환."""

    def test_from_dict(self):
        usage = TokenUsage.from_openai(
            {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}
        )
        assert usage == TokenUsage(10, 20, 30)

    def test_from_object_without_total(self):
        usage = TokenUsage.from_openai(SimpleNamespace(prompt_tokens=7, completion_tokens=3))
        assert usage.total_tokens == 10

    def test_none(self):
        assert TokenUsage.from_openai(None) is None


# =============================================================================
# Retry Policy
# =============================================================================

class TestIsRetryableError:
    """재시도 대상 판정."""

    @pytest.mark.parametrize(
        "error",
        [
            TransportError(CONNECTION_RESET, "reset"),
            TransportError(TIMED_OUT, "timeout"),
            TransportError("HTTP_429", "rate", status=429),
            TransportError("HTTP_500", "server", status=500),
            TransportError("HTTP_503", "unavailable", status=503),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable_error(error) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_not_retryable(self, status):
        assert is_retryable_error(TransportError(f"HTTP_{status}", "x", status=status)) is False

    def test_plain_exception_not_retryable(self):
        assert is_retryable_error(ValueError("x")) is False


class TestWithRetry:
    """LLMProvider._with_retry 공통 정책."""

    @pytest.mark.asyncio
    async def test_server_error_retried_then_normalized(self, stub_provider_cls, request_):
        """HTTP 500 지속 → 총 4회, 지연 1/2/4, ProviderError."""
        provider = stub_provider_cls(
            make_config(max_retries=3),
            replies=[TransportError("HTTP_500", "boom", status=500) for _ in range(10)],
        )

        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ProviderError) as exc_info:
                await provider.chat(request_)

        assert len(provider.requests) == 4
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 4.0]
        error = exc_info.value
        assert error.http_status == 500
        assert error.message == "Provider server error"
        assert error.provider_name == "Stub"

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self, stub_provider_cls, request_):
        """401 → 1회만 시도."""
        provider = stub_provider_cls(
            make_config(max_retries=3),
            replies=[TransportError("invalid_api_key", "bad key", status=401)],
        )

        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ProviderError) as exc_info:
                await provider.chat(request_)

        assert len(provider.requests) == 1
        sleep.assert_not_called()
        assert exc_info.value.code == "invalid_api_key"
        assert exc_info.value.message == "Invalid API key"
        assert exc_info.value.is_auth_error

    @pytest.mark.asyncio
    async def test_rate_limit_recovers(self, stub_provider_cls, request_):
        provider = stub_provider_cls(
            make_config(max_retries=3),
            replies=[
                TransportError("rate_limit", "slow down", status=429),
                TransportError(CONNECTION_RESET, "reset"),
                "final answer",
            ],
        )

        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock):
            response = await provider.chat(request_)

        assert response.text == "final answer"
        assert len(provider.requests) == 3

    @pytest.mark.asyncio
    async def test_bad_request_message_kept(self, stub_provider_cls, request_):
        """4xx(401/429 외)는 원본 메시지 유지."""
        provider = stub_provider_cls(
            make_config(),
            replies=[TransportError("context_length_exceeded", "too long", status=400)],
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat(request_)

        assert exc_info.value.message == "too long"
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_unexpected_exception_normalized(self, stub_provider_cls, request_):
        provider = stub_provider_cls(make_config(), replies=[RuntimeError("kaboom")])

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat(request_)

        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert exc_info.value.message == "kaboom"

    @pytest.mark.asyncio
    async def test_attempt_timeout_becomes_etimedout(self, stub_provider_cls, request_):
        """시도 시간 초과 → ETIMEDOUT."""

        class Hanging(stub_provider_cls):
            async def _chat_once(self, request):
                await asyncio.Event().wait()

        provider = Hanging(make_config(max_retries=0, timeout_ms=20))

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat(request_)

        assert exc_info.value.code == TIMED_OUT


class TestValidateAndModels:
    """validate_api_key / list_models."""

    @pytest.mark.asyncio
    async def test_validate_true(self, stub_provider_cls):
        provider = stub_provider_cls(make_config())
        assert await provider.validate_api_key() is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_validate_false_on_auth_error(self, stub_provider_cls, status):
        provider = stub_provider_cls(make_config())
        provider._probe = AsyncMock(side_effect=TransportError("auth", "denied", status=status))

        assert await provider.validate_api_key() is False

    @pytest.mark.asyncio
    async def test_validate_propagates_other_errors(self, stub_provider_cls):
        """판단 불가 에러는 False가 아니라 예외."""
        provider = stub_provider_cls(make_config(max_retries=0))
        provider._probe = AsyncMock(side_effect=TransportError(CONNECTION_RESET, "reset"))

        with pytest.raises(ProviderError):
            await provider.validate_api_key()

    @pytest.mark.asyncio
    async def test_list_models_falls_back_on_error(self, stub_provider_cls):
        provider = stub_provider_cls(make_config(max_retries=0))
        provider._fetch_models = AsyncMock(side_effect=TransportError("HTTP_404", "nf", status=404))

        models = await provider.list_models()

        assert [m.id for m in models] == ["stub-model"]

    @pytest.mark.asyncio
    async def test_list_models_falls_back_when_empty(self, stub_provider_cls):
        provider = stub_provider_cls(make_config())
        models = await provider.list_models()
        assert models == provider.fallback_models()
