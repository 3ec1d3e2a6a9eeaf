"""
LLM Provider Abstraction.

6개 백엔드, 하나의 계약 (chat / list_models / validate_api_key).
재시도/타임아웃/에러 정규화는 base.LLMProvider 한 곳.
"""

from .aliyun import AliyunProvider
from .anthropic import AnthropicProvider
from .base import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatRole,
    LLMProvider,
    ModelInfo,
    ProviderConfig,
    ProviderError,
    ProviderKind,
    TokenUsage,
)
from .bytedance import BytedanceProvider
from .custom import CustomProvider
from .deepseek import DeepSeekProvider
from .gateway import ConnectionTestResult, ProviderGateway, create_provider
from .openai import OpenAIProvider

__all__ = [
    # base
    "LLMProvider",
    "ProviderConfig",
    "ProviderKind",
    "ProviderError",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "ModelInfo",
    "TokenUsage",
    # backends
    "OpenAIProvider",
    "AnthropicProvider",
    "DeepSeekProvider",
    "AliyunProvider",
    "BytedanceProvider",
    "CustomProvider",
    # gateway
    "ProviderGateway",
    "ConnectionTestResult",
    "create_provider",
]
