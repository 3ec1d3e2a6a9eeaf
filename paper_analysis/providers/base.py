"""
LLM Provider 추상 인터페이스.

6개 백엔드(openai, anthropic, deepseek, aliyun, bytedance, custom)가
동일한 계약을 구현:
- chat(request) -> ChatResponse
- list_models() -> list[ModelInfo]  (실패 시 정적 카탈로그)
- validate_api_key() -> bool        (401/403만 False)

재시도/타임아웃/에러 정규화는 LLMProvider._with_retry 한 곳에서만 처리.
Provider 경계 밖으로는 ProviderError만 나감.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, TypeVar

from paper_analysis.utils.retry import retry_with_exponential_backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Configuration
# =============================================================================

class ProviderKind(str, Enum):
    """지원하는 백엔드 종류."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    ALIYUN = "aliyun"
    BYTEDANCE = "bytedance"
    CUSTOM = "custom"


DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_MAX_RETRIES = 3


@dataclass
class ProviderConfig:
    """
    백엔드별 설정.

    kind당 하나. Gateway에서 kind 키로 보관.
    api_key가 비어 있으면 클라이언트 생성 불가 (fail-fast).
    """
    kind: ProviderKind
    api_key: str
    base_url: str | None = None
    default_model: str | None = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        self.kind = ProviderKind(self.kind)

    def with_default_model(self, model: str | None) -> "ProviderConfig":
        return replace(self, default_model=model)

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용 (api_key 마스킹)."""
        return {
            "kind": self.kind.value,
            "api_key": mask_api_key(self.api_key),
            "base_url": self.base_url,
            "default_model": self.default_model,
            "timeout_ms": self.timeout_ms,
            "max_retries": self.max_retries,
        }


def mask_api_key(api_key: str) -> str:
    """로그 출력용 키 마스킹."""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "***"
    return f"{api_key[:4]}...{api_key[-4:]}"


# =============================================================================
# Request / Response
# =============================================================================

class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", ChatRole(self.role))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ChatRequest:
    """
    정규화된 채팅 요청 (불변).

    백엔드별 wire format 변환은 각 Provider가 담당.
    """
    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float = 0.7
    max_output_tokens: int | None = None
    top_p: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))

    @property
    def system_prompt(self) -> str | None:
        for message in self.messages:
            if message.role == ChatRole.SYSTEM:
                return message.content
        return None

    def conversation(self) -> list[ChatMessage]:
        """system을 제외한 메시지."""
        return [m for m in self.messages if m.role != ChatRole.SYSTEM]


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_openai(cls, usage: Any) -> "TokenUsage | None":
        """OpenAI 호환 usage (dict 또는 SDK 객체) → TokenUsage."""
        if not usage:
            return None
        if isinstance(usage, dict):
            get = usage.get
        else:
            def get(key: str, default: Any = None) -> Any:
                return getattr(usage, key, default)
        prompt = int(get("prompt_tokens", 0) or 0)
        completion = int(get("completion_tokens", 0) or 0)
        total = int(get("total_tokens", 0) or prompt + completion)
        return cls(prompt, completion, total)


@dataclass
class ChatResponse:
    text: str
    model: str
    finish_reason: str | None = None
    usage: TokenUsage | None = None


@dataclass
class ModelInfo:
    """모델 카탈로그 항목."""
    id: str
    name: str
    max_tokens: int
    supports_functions: bool = True


# =============================================================================
# Provider Exceptions
# =============================================================================

class ProviderError(Exception):
    """
    정규화된 Provider 에러.

    모든 백엔드 실패는 Provider 경계에서 이 형태로 변환됨.
    호출자는 raw transport 예외를 보지 않음.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int | None = None,
        provider_name: str = "",
        **context: Any,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.provider_name = provider_name
        self.context = context
        super().__init__(f"[{code}] {message}")

    @property
    def is_auth_error(self) -> bool:
        return self.http_status in (401, 403)

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            "message": self.message,
            "http_status": self.http_status,
            "provider_name": self.provider_name,
            **self.context,
        }


class TransportError(Exception):
    """
    정규화 이전의 전송 계층 에러.

    각 Provider의 transport helper가 SDK/httpx 예외를 이 형태로 변환.
    Provider 밖으로 나가지 않음 (_with_retry에서 ProviderError로 변환).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status: int | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status = status
        super().__init__(message)


# 전송 계층 에러 코드
CONNECTION_RESET = "ECONNRESET"
TIMED_OUT = "ETIMEDOUT"
INVALID_RESPONSE = "INVALID_RESPONSE"
UNKNOWN_ERROR = "UNKNOWN_ERROR"

RETRYABLE_CODES = frozenset({CONNECTION_RESET, TIMED_OUT})

FRIENDLY_MESSAGES = {
    401: "Invalid API key",
    429: "Rate limit exceeded, please try again later",
}
SERVER_ERROR_MESSAGE = "Provider server error"


def is_retryable_error(error: Exception) -> bool:
    """
    재시도 가능 여부.

    - 연결 끊김, 타임아웃
    - HTTP 429, HTTP >= 500
    """
    if isinstance(error, ProviderError):
        code, status = error.code, error.http_status
    else:
        code = getattr(error, "code", None)
        status = getattr(error, "status", None)

    if code in RETRYABLE_CODES:
        return True
    if status is not None and (status == 429 or status >= 500):
        return True
    return False


# =============================================================================
# Abstract Provider
# =============================================================================

class LLMProvider(ABC):
    """
    LLM Provider 추상 인터페이스.

    하위 클래스 구현 대상 (네트워크 1회 시도 단위):
    - _chat_once(request)
    - _probe()           : 키 검증용 최소 요청
    - _fetch_models()    : live 모델 조회 (없으면 정적 카탈로그)
    - fallback_models()
    """

    #: 사용자 표시용 이름
    display_name: str = ""

    #: 기본 endpoint (None이면 base_url 필수)
    DEFAULT_BASE_URL: str | None = None

    def __init__(self, config: ProviderConfig):
        """
        Args:
            config: 백엔드 설정

        Raises:
            ProviderError: API_KEY_MISSING, BASE_URL_MISSING (네트워크 호출 없음)
        """
        self.config = config
        self.api_key = config.api_key
        self.base_url = (config.base_url or self.DEFAULT_BASE_URL or "").rstrip("/")
        self.timeout = config.timeout_ms / 1000 if config.timeout_ms else None
        self.max_retries = max(config.max_retries, 0)
        self._validate_config()

    @property
    def provider_name(self) -> str:
        return self.display_name or self.config.kind.value

    def _validate_config(self) -> None:
        # Fail-fast: 키가 없으면 즉시 에러
        if not self.api_key:
            raise ProviderError(
                "API_KEY_MISSING",
                "API key is required",
                provider_name=self.provider_name,
            )
        if not self.base_url:
            raise ProviderError(
                "BASE_URL_MISSING",
                f"{self.provider_name} provider requires base_url to be configured",
                provider_name=self.provider_name,
            )

    # =========================================================================
    # Public contract
    # =========================================================================

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """채팅 요청 (공통 재시도 정책 적용)."""
        return await self._with_retry(lambda: self._chat_once(request))

    async def list_models(self) -> list[ModelInfo]:
        """
        사용 가능한 모델 목록.

        live 조회 실패/미지원 시 정적 카탈로그 반환 (에러 전파 없음).
        """
        try:
            models = await self._with_retry(self._fetch_models)
        except ProviderError as e:
            logger.info(f"Failed to fetch {self.provider_name} models: {e}")
            models = []
        return models or self.fallback_models()

    async def validate_api_key(self) -> bool:
        """
        API 키 검증.

        401/403만 False. 그 외 실패는 ProviderError로 전파
        (판단 불가 상황에서 정상 키를 무효 처리하지 않음).
        """
        try:
            await self._with_retry(self._probe)
        except ProviderError as e:
            if e.is_auth_error:
                return False
            raise
        return True

    async def aclose(self) -> None:
        """보유 중인 transport 자원 해제."""
        return None

    # =========================================================================
    # Backend hooks
    # =========================================================================

    @abstractmethod
    async def _chat_once(self, request: ChatRequest) -> ChatResponse:
        ...

    @abstractmethod
    async def _probe(self) -> None:
        ...

    async def _fetch_models(self) -> list[ModelInfo]:
        return []

    @abstractmethod
    def fallback_models(self) -> list[ModelInfo]:
        ...

    # =========================================================================
    # Shared retry / timeout / normalization
    # =========================================================================

    async def _with_retry(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        공통 재시도 래퍼.

        - 시도마다 timeout race (asyncio.wait_for, 패배한 쪽은 cancel)
        - 재시도 대상: ECONNRESET, ETIMEDOUT, 429, >=500
        - 지연: 1s, 2s, 4s, ... (상한/jitter 없음)
        - 종료 시 항상 ProviderError
        """

        async def _attempt() -> T:
            try:
                return await asyncio.wait_for(func(), timeout=self.timeout)
            except TimeoutError as e:
                raise TransportError(
                    TIMED_OUT,
                    f"{self.provider_name} request timed out",
                ) from e

        try:
            return await retry_with_exponential_backoff(
                _attempt,
                max_retries=self.max_retries,
                initial_delay=1.0,
                max_delay=None,
                exponential_base=2.0,
                is_retryable=is_retryable_error,
            )
        except ProviderError:
            raise
        except Exception as e:
            raise self.normalize_error(e) from e

    def normalize_error(self, error: Exception) -> ProviderError:
        """임의의 예외 → ProviderError."""
        if isinstance(error, TransportError):
            code, message, status = error.code, error.message, error.status
        else:
            code = getattr(error, "code", None) or UNKNOWN_ERROR
            message = str(error) or "An unknown error occurred"
            status = getattr(error, "status", None)

        if status in FRIENDLY_MESSAGES:
            message = FRIENDLY_MESSAGES[status]
        elif status is not None and status >= 500:
            message = SERVER_ERROR_MESSAGE

        return ProviderError(
            str(code),
            message,
            http_status=status,
            provider_name=self.provider_name,
        )

