"""
Anthropic (Claude) Provider.

Messages API (anthropic SDK):
- system 메시지는 별도 system 파라미터로 분리
- stop_reason → finish_reason, input/output_tokens → TokenUsage
- SDK 자체 재시도는 끔 (max_retries=0), 재시도는 공통 정책만 사용
"""

import logging
from typing import Any

import anthropic

from .base import (
    CONNECTION_RESET,
    INVALID_RESPONSE,
    TIMED_OUT,
    ChatRequest,
    ChatResponse,
    LLMProvider,
    ModelInfo,
    ProviderConfig,
    TokenUsage,
    TransportError,
)

logger = logging.getLogger(__name__)

# 키 검증용 최소 요청 모델
PROBE_MODEL = "claude-3-haiku-20240307"

# max_tokens는 Messages API 필수 파라미터
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(LLMProvider):
    """
    Claude API Provider.

    Usage:
        provider = AnthropicProvider(ProviderConfig(kind="anthropic", api_key="sk-ant-..."))
        response = await provider.chat(request)
    """

    display_name = "Anthropic"
    DEFAULT_BASE_URL = "https://api.anthropic.com"

    def __init__(self, config: ProviderConfig, client: Any = None):
        """
        Args:
            config: 백엔드 설정
            client: 주입용 AsyncAnthropic 클라이언트 (테스트용)
        """
        super().__init__(config)
        self._client: Any = client

    def _get_client(self) -> Any:
        """Anthropic 클라이언트 (lazy init)."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,  # 공통 재시도 정책 사용
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
        self._client = None

    async def _call(self, **api_kwargs: Any) -> Any:
        """SDK 호출 1회 + 예외 → TransportError 변환."""
        try:
            return await self._get_client().messages.create(**api_kwargs)
        except anthropic.APITimeoutError as e:
            raise TransportError(
                TIMED_OUT, f"{self.provider_name} request timed out"
            ) from e
        except anthropic.APIConnectionError as e:
            raise TransportError(CONNECTION_RESET, str(e) or "Connection error") from e
        except anthropic.APIStatusError as e:
            raise TransportError(
                _error_type(e.body) or f"HTTP_{e.status_code}",
                e.message,
                status=e.status_code,
            ) from e

    async def _chat_once(self, request: ChatRequest) -> ChatResponse:
        api_kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_output_tokens or DEFAULT_MAX_TOKENS,
            "temperature": request.temperature,
            "messages": [m.to_dict() for m in request.conversation()],
        }
        # 선택적 파라미터 추가
        system = request.system_prompt
        if system:
            api_kwargs["system"] = system
        if request.top_p is not None:
            api_kwargs["top_p"] = request.top_p

        response = await self._call(**api_kwargs)

        content = getattr(response, "content", None)
        if not content:
            raise TransportError(
                INVALID_RESPONSE, f"Invalid response from {self.provider_name}"
            )
        block = content[0]
        text = block.text if getattr(block, "type", "text") == "text" else ""

        usage = getattr(response, "usage", None)
        token_usage = None
        if usage is not None:
            input_tokens = int(usage.input_tokens or 0)
            output_tokens = int(usage.output_tokens or 0)
            token_usage = TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        return ChatResponse(
            text=text or "",
            model=getattr(response, "model", None) or request.model,
            finish_reason=getattr(response, "stop_reason", None) or None,
            usage=token_usage,
        )

    async def _probe(self) -> None:
        # 별도 검증 endpoint 없음: 최소 요청
        await self._call(
            model=PROBE_MODEL,
            max_tokens=10,
            messages=[{"role": "user", "content": "test"}],
        )

    def fallback_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", 200000),
            ModelInfo("claude-3-opus-20240229", "Claude 3 Opus", 200000),
            ModelInfo("claude-3-sonnet-20240229", "Claude 3 Sonnet", 200000),
            ModelInfo("claude-3-haiku-20240307", "Claude 3 Haiku", 200000),
        ]


def _error_type(body: Any) -> str | None:
    """{"type": "error", "error": {"type": ..., "message": ...}} → type."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("type"):
            return str(error["type"])
    return None
