"""
Provider Gateway: 여러 백엔드 설정 보관 + 활성 백엔드 추적.

- 설정은 kind별 1개, 클라이언트는 lazy 생성 후 캐시
- 설정 갱신 시 캐시된 클라이언트 무효화 (다음 호출에서 새 자격 증명으로 재생성,
  교체된 클라이언트는 shutdown에서 해제)
- 활성 Provider 삭제 시 다른 Provider로 자동 전환하지 않음
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from paper_analysis.domain.errors import ConfigurationError, ErrorCodes

from .aliyun import AliyunProvider
from .anthropic import AnthropicProvider
from .base import (
    ChatRequest,
    ChatResponse,
    LLMProvider,
    ModelInfo,
    ProviderConfig,
    ProviderError,
    ProviderKind,
)
from .bytedance import BytedanceProvider
from .custom import CustomProvider
from .deepseek import DeepSeekProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[ProviderKind, type[LLMProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.DEEPSEEK: DeepSeekProvider,
    ProviderKind.ALIYUN: AliyunProvider,
    ProviderKind.BYTEDANCE: BytedanceProvider,
    ProviderKind.CUSTOM: CustomProvider,
}

ProviderFactory = Callable[[ProviderConfig], LLMProvider]


def create_provider(config: ProviderConfig) -> LLMProvider:
    """설정 → Provider 인스턴스."""
    return PROVIDER_CLASSES[config.kind](config)


def coerce_kind(kind: ProviderKind | str) -> ProviderKind:
    try:
        return ProviderKind(kind)
    except ValueError:
        raise ConfigurationError(
            ErrorCodes.UNKNOWN_PROVIDER,
            f"Unknown provider type: {kind}",
            kind=str(kind),
        ) from None


@dataclass
class ConnectionTestResult:
    """test_connection 결과 (사용자 표시용)."""
    success: bool
    message: str
    models: list[ModelInfo] = field(default_factory=list)


class ProviderGateway:
    """
    백엔드 독립적인 chat / list_models / validate_api_key 진입점.

    Usage:
        gateway = ProviderGateway()
        gateway.add_or_update_provider(ProviderConfig(kind="openai", api_key="sk-...", default_model="gpt-4"))
        gateway.set_active("openai")
        response = await gateway.chat(request)
    """

    def __init__(
        self,
        configs: list[ProviderConfig] | None = None,
        active: ProviderKind | str | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        """
        Args:
            configs: 초기 설정 목록
            active: 초기 활성 Provider (설정에 없으면 무시)
            provider_factory: 설정 → Provider 생성 함수 (테스트 주입용)
        """
        self._configs: dict[ProviderKind, ProviderConfig] = {}
        self._providers: dict[ProviderKind, LLMProvider] = {}
        # 설정 갱신으로 교체된 클라이언트 (shutdown 시 함께 해제)
        self._retired: list[LLMProvider] = []
        self._active: ProviderKind | None = None
        self._factory = provider_factory or create_provider

        for config in configs or []:
            self.add_or_update_provider(config)

        if active is not None:
            if coerce_kind(active) in self._configs:
                self.set_active(active)
            else:
                logger.warning(f"Active provider {active} has no configuration, ignored")

    @classmethod
    def from_settings(cls, settings: Any) -> "ProviderGateway":
        """core.config.Settings → Gateway."""
        return cls(
            configs=list(settings.providers.values()),
            active=settings.active_provider,
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    def add_or_update_provider(self, config: ProviderConfig) -> None:
        """
        설정 upsert.

        default_model이 비어 있으면 기존 값 유지 (유일한 암묵적 병합).
        캐시된 클라이언트는 폐기.
        """
        existing = self._configs.get(config.kind)
        if existing is not None and not config.default_model and existing.default_model:
            config = config.with_default_model(existing.default_model)

        self._configs[config.kind] = config
        self._discard_client(config.kind)
        logger.debug(f"Provider configured: {config.to_dict()}")

    def remove_provider(self, kind: ProviderKind | str) -> None:
        """설정 + 캐시 클라이언트 제거. 활성이었다면 활성 상태 해제."""
        kind = coerce_kind(kind)
        self._configs.pop(kind, None)
        self._discard_client(kind)
        if self._active == kind:
            self._active = None

    def set_active(self, kind: ProviderKind | str) -> None:
        """
        활성 Provider 지정.

        Raises:
            ConfigurationError: NOT_CONFIGURED
        """
        kind = coerce_kind(kind)
        if kind not in self._configs:
            raise ConfigurationError(
                ErrorCodes.NOT_CONFIGURED,
                f"Provider {kind.value} is not configured",
                kind=kind.value,
            )
        self._active = kind

    @property
    def active_provider(self) -> ProviderKind | None:
        return self._active

    def configured_providers(self) -> list[ProviderKind]:
        return list(self._configs)

    def get_provider_config(self, kind: ProviderKind | str) -> ProviderConfig | None:
        return self._configs.get(coerce_kind(kind))

    def is_provider_configured(self, kind: ProviderKind | str | None = None) -> bool:
        """설정이 있고 API 키가 비어 있지 않은지."""
        resolved = coerce_kind(kind) if kind is not None else self._active
        if resolved is None:
            return False
        config = self._configs.get(resolved)
        return bool(config and config.api_key)

    def get_default_model(self, kind: ProviderKind | str | None = None) -> str | None:
        resolved = coerce_kind(kind) if kind is not None else self._active
        if resolved is None:
            return None
        config = self._configs.get(resolved)
        return config.default_model if config else None

    def set_default_model(self, model: str, kind: ProviderKind | str | None = None) -> None:
        """
        기본 모델 변경.

        Raises:
            ConfigurationError: NO_ACTIVE_PROVIDER, NOT_CONFIGURED
        """
        resolved = self._resolve_kind(kind)
        config = self._require_config(resolved)
        self._configs[resolved] = config.with_default_model(model)
        self._discard_client(resolved)

    # =========================================================================
    # Client resolution
    # =========================================================================

    def _resolve_kind(self, kind: ProviderKind | str | None) -> ProviderKind:
        if kind is not None:
            return coerce_kind(kind)
        if self._active is None:
            raise ConfigurationError(
                ErrorCodes.NO_ACTIVE_PROVIDER,
                "No active provider set",
            )
        return self._active

    def _require_config(self, kind: ProviderKind) -> ProviderConfig:
        config = self._configs.get(kind)
        if config is None:
            raise ConfigurationError(
                ErrorCodes.NOT_CONFIGURED,
                f"Provider {kind.value} is not configured",
                kind=kind.value,
            )
        return config

    def get_provider(self, kind: ProviderKind | str | None = None) -> LLMProvider:
        """
        Provider 인스턴스 (lazy 생성 + 캐시).

        Raises:
            ConfigurationError: NO_ACTIVE_PROVIDER, NOT_CONFIGURED
            ProviderError: API_KEY_MISSING, BASE_URL_MISSING
        """
        resolved = self._resolve_kind(kind)
        provider = self._providers.get(resolved)
        if provider is None:
            provider = self._factory(self._require_config(resolved))
            self._providers[resolved] = provider
        return provider

    def _discard_client(self, kind: ProviderKind) -> None:
        provider = self._providers.pop(kind, None)
        if provider is not None:
            self._retired.append(provider)
            logger.debug(f"Discarded cached client for {kind.value}")

    # =========================================================================
    # Unified surface
    # =========================================================================

    async def chat(
        self,
        request: ChatRequest,
        kind: ProviderKind | str | None = None,
    ) -> ChatResponse:
        return await self.get_provider(kind).chat(request)

    async def list_models(self, kind: ProviderKind | str | None = None) -> list[ModelInfo]:
        return await self.get_provider(kind).list_models()

    async def validate_api_key(self, kind: ProviderKind | str | None = None) -> bool:
        return await self.get_provider(kind).validate_api_key()

    async def test_connection(
        self,
        kind: ProviderKind | str | None = None,
    ) -> ConnectionTestResult:
        """
        키 검증 → 성공 시 모델 목록 조회.

        실패는 예외 대신 ConnectionTestResult(success=False)로 반환.
        """
        try:
            provider = self.get_provider(kind)
            if not await provider.validate_api_key():
                return ConnectionTestResult(
                    success=False,
                    message="Invalid API key, please check your configuration.",
                )
            models = await provider.list_models()
        except (ConfigurationError, ProviderError) as e:
            logger.warning(f"Connection test failed: {e}")
            return ConnectionTestResult(
                success=False,
                message=f"Connection failed: {e.message}",
            )

        return ConnectionTestResult(
            success=True,
            message=f"Connection successful! Found {len(models)} available models.",
            models=models,
        )

    async def shutdown(self) -> None:
        """캐시된 클라이언트 + 교체된 클라이언트 자원 해제."""
        providers = [*self._retired, *self._providers.values()]
        self._retired.clear()
        self._providers.clear()
        for provider in providers:
            try:
                await provider.aclose()
            except Exception as e:
                logger.warning(f"Failed to close {provider.provider_name} client: {e}")
