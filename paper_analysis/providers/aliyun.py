"""
Aliyun Qwen (DashScope) Provider.

DashScope의 OpenAI 호환 모드를 openai SDK로 호출.
SDK 자체 재시도는 끔 (max_retries=0).
"""

import logging
from typing import Any

import openai

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

PROBE_MODEL = "qwen-turbo"


class AliyunProvider(LLMProvider):
    """통의천문(Qwen) Provider."""

    display_name = "Aliyun (Qwen)"
    DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"

    def __init__(self, config: ProviderConfig, client: Any = None):
        """
        Args:
            config: 백엔드 설정
            client: 주입용 AsyncOpenAI 클라이언트 (테스트용)
        """
        super().__init__(config)
        self._client: Any = client

    def _get_client(self) -> Any:
        """OpenAI SDK 클라이언트 (lazy init)."""
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
        self._client = None

    async def _create(self, **api_kwargs: Any) -> Any:
        """SDK 호출 1회 + 예외 → TransportError 변환."""
        try:
            return await self._get_client().chat.completions.create(**api_kwargs)
        except openai.APITimeoutError as e:
            raise TransportError(
                TIMED_OUT, f"{self.provider_name} request timed out"
            ) from e
        except openai.APIConnectionError as e:
            raise TransportError(CONNECTION_RESET, str(e) or "Connection error") from e
        except openai.APIStatusError as e:
            code = getattr(e, "code", None) or f"HTTP_{e.status_code}"
            raise TransportError(str(code), e.message, status=e.status_code) from e

    async def _chat_once(self, request: ChatRequest) -> ChatResponse:
        api_kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": [m.to_dict() for m in request.messages],
            "temperature": request.temperature,
            "stream": False,
        }
        if request.max_output_tokens is not None:
            api_kwargs["max_tokens"] = request.max_output_tokens
        if request.top_p is not None:
            api_kwargs["top_p"] = request.top_p

        response = await self._create(**api_kwargs)

        choices = getattr(response, "choices", None)
        choice = choices[0] if choices else None
        if choice is None or getattr(choice, "message", None) is None:
            raise TransportError(
                INVALID_RESPONSE, f"Invalid response from {self.provider_name}"
            )

        return ChatResponse(
            text=choice.message.content or "",
            model=getattr(response, "model", None) or request.model,
            finish_reason=getattr(choice, "finish_reason", None) or None,
            usage=TokenUsage.from_openai(getattr(response, "usage", None)),
        )

    async def _probe(self) -> None:
        await self._create(
            model=PROBE_MODEL,
            messages=[{"role": "user", "content": "test"}],
            max_tokens=10,
        )

    def fallback_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("qwen-max", "Qwen Max", 8000),
            ModelInfo("qwen-plus", "Qwen Plus", 8000),
            ModelInfo("qwen-turbo", "Qwen Turbo", 8000),
            ModelInfo("qwen-long", "Qwen Long", 1000000, supports_functions=False),
        ]
