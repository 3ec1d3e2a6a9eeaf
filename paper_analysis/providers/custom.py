"""
Custom Provider: 임의의 OpenAI 호환 endpoint.

base_url 필수 (기본값 없음 → 생성 시 BASE_URL_MISSING).
"""

from .base import ModelInfo, TransportError
from .openai_compat import OpenAICompatibleProvider

# /models 미지원 서버에서 키 검증에 쓰는 모델
FALLBACK_PROBE_MODEL = "gpt-3.5-turbo"


class CustomProvider(OpenAICompatibleProvider):
    """사용자 지정 OpenAI 호환 서버."""

    display_name = "Custom"
    DEFAULT_BASE_URL = None
    SUPPORTS_MODEL_DISCOVERY = True

    def fallback_models(self) -> list[ModelInfo]:
        # 카탈로그를 알 수 없음: 설정된 기본 모델만 노출
        model = self.config.default_model
        if not model:
            return []
        return [ModelInfo(id=model, name=model, max_tokens=8192)]

    async def _probe(self) -> None:
        try:
            await self._request("GET", "/models")
        except TransportError as e:
            if e.status not in (404, 405):
                raise
            # /models 미지원 → 최소 chat 요청
            await self._request(
                "POST",
                "/chat/completions",
                {
                    "model": self.config.default_model or FALLBACK_PROBE_MODEL,
                    "messages": [{"role": "user", "content": "test"}],
                    "max_tokens": 10,
                },
            )
