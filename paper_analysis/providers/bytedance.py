"""
Bytedance Doubao (Volcengine Ark) Provider.

OpenAI 호환 API. 모델 조회 endpoint가 없어 정적 카탈로그만 제공,
키 검증은 최소 chat 요청으로 수행.
"""

from .base import ModelInfo
from .openai_compat import OpenAICompatibleProvider


class BytedanceProvider(OpenAICompatibleProvider):
    """Doubao Chat API."""

    display_name = "Bytedance (Doubao)"
    DEFAULT_BASE_URL = "https://ark.cn-beijing.volces.com/api/v3"
    PROBE_MODEL = "doubao-lite-4k"

    def fallback_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("doubao-lite-4k", "Doubao Lite 4K", 4096),
            ModelInfo("doubao-pro-4k", "Doubao Pro 4K", 4096),
            ModelInfo("doubao-pro-32k", "Doubao Pro 32K", 32768),
            ModelInfo("doubao-pro-128k", "Doubao Pro 128K", 131072),
        ]
