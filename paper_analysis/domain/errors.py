"""
Error definitions for the analysis pipeline.

분류:
- 설정 에러 (API 키/base_url/템플릿/활성 Provider 누락) → ConfigurationError, 즉시 실패, 재시도 없음
- 전송/인증/응답 에러 → providers.base.ProviderError (Provider 경계에서 정규화)
- 추출 에러 → 예외 아님, ExtractionStatus에 기록
"""

from typing import Any


class ConfigurationError(Exception):
    """
    파이프라인 설정 누락/오류.

    Usage:
        raise ConfigurationError(ErrorCodes.NOT_CONFIGURED, "Provider openai is not configured", kind="openai")
    """

    def __init__(self, code: str, message: str, **context: Any) -> None:
        self.code = code
        self.message = message
        self.context = context
        super().__init__(f"[{code}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            "message": self.message,
            **self.context,
        }


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수."""

    # === Provider Gateway ===
    NOT_CONFIGURED = "NOT_CONFIGURED"
    NO_ACTIVE_PROVIDER = "NO_ACTIVE_PROVIDER"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    API_KEY_MISSING = "API_KEY_MISSING"
    NO_DEFAULT_MODEL = "NO_DEFAULT_MODEL"

    # === Templates ===
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    DEFAULT_TEMPLATE_IMMUTABLE = "DEFAULT_TEMPLATE_IMMUTABLE"
    INVALID_TEMPLATE = "INVALID_TEMPLATE"
    TEMPLATE_LOCK_TIMEOUT = "TEMPLATE_LOCK_TIMEOUT"

    # === Library ===
    LIBRARY_NOT_FOUND = "LIBRARY_NOT_FOUND"
    LIBRARY_CORRUPT = "LIBRARY_CORRUPT"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    ANNOTATION_LOCK_TIMEOUT = "ANNOTATION_LOCK_TIMEOUT"

    # === Settings ===
    SETTINGS_NOT_FOUND = "SETTINGS_NOT_FOUND"
    SETTINGS_INVALID = "SETTINGS_INVALID"
