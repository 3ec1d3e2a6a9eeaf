"""DeepSeek Provider (OpenAI 호환)."""

from .base import ModelInfo
from .openai_compat import OpenAICompatibleProvider


class DeepSeekProvider(OpenAICompatibleProvider):
    """DeepSeek Chat API."""

    display_name = "DeepSeek"
    DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
    SUPPORTS_MODEL_DISCOVERY = True

    def _model_info(self, model_id: str) -> ModelInfo:
        return ModelInfo(id=model_id, name=model_id, max_tokens=32768)

    def fallback_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("deepseek-chat", "DeepSeek Chat", 32768),
            ModelInfo("deepseek-coder", "DeepSeek Coder", 32768),
        ]
