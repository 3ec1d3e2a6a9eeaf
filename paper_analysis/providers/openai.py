"""
OpenAI Provider.

Chat Completions API (httpx), GET /models로 GPT 모델 live 조회.
"""

from .base import ModelInfo
from .openai_compat import OpenAICompatibleProvider


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI Chat Completions."""

    display_name = "OpenAI"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    SUPPORTS_MODEL_DISCOVERY = True

    def _accept_model(self, model_id: str) -> bool:
        # 임베딩/음성 모델 등 제외
        return "gpt" in model_id

    def _model_info(self, model_id: str) -> ModelInfo:
        if "32k" in model_id:
            max_tokens = 32768
        elif "16k" in model_id:
            max_tokens = 16385
        elif "turbo-preview" in model_id or "4-turbo" in model_id:
            max_tokens = 128000
        else:
            max_tokens = 8192
        return ModelInfo(id=model_id, name=model_id, max_tokens=max_tokens)

    def fallback_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("gpt-4-turbo-preview", "GPT-4 Turbo", 128000),
            ModelInfo("gpt-4", "GPT-4", 8192),
            ModelInfo("gpt-4-32k", "GPT-4 32K", 32768),
            ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", 16385),
            ModelInfo("gpt-3.5-turbo-16k", "GPT-3.5 Turbo 16K", 16385),
        ]
