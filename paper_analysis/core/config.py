"""
설정 로드: default.yaml + 환경 변수 (.env).

- 생성 시 1회 로드, live reload 없음
- api_key 직접 지정 또는 api_key_env로 환경 변수 이름 지정
- 키가 없는 provider는 건너뜀 (Gateway에 등록하지 않음)
- 상대 경로(templates.path, library.path)는 설정 파일 위치 기준
  (--config 없이 내장 default.yaml을 쓰면 현재 작업 디렉터리 기준)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from paper_analysis.domain.constants import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    REQUEST_DELAY_SECONDS,
)
from paper_analysis.domain.errors import ConfigurationError, ErrorCodes
from paper_analysis.providers.base import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_MS,
    ProviderConfig,
    ProviderKind,
)

logger = logging.getLogger(__name__)

# 패키지에 포함된 기본 설정 (상대 경로는 현재 작업 디렉터리 기준)
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "default.yaml"

DEFAULT_KEY_ENV = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.DEEPSEEK: "DEEPSEEK_API_KEY",
    ProviderKind.ALIYUN: "DASHSCOPE_API_KEY",
    ProviderKind.BYTEDANCE: "ARK_API_KEY",
    ProviderKind.CUSTOM: "CUSTOM_LLM_API_KEY",
}


@dataclass
class AnalysisSettings:
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    auto_create_note: bool = True
    request_delay: float = REQUEST_DELAY_SECONDS


@dataclass
class Settings:
    """전체 설정."""
    active_provider: ProviderKind | None = None
    providers: dict[ProviderKind, ProviderConfig] = field(default_factory=dict)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)
    templates_path: Path = Path("prompts.yaml")
    library_path: Path | None = None
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """YAML 설정 파일 로드. 없으면 빈 dict."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(
            ErrorCodes.SETTINGS_INVALID,
            f"Settings file must be a mapping: {config_path}",
            path=str(config_path),
        )
    return data


def load_settings(
    config_path: Path | None = None,
    env_file: Path | None = None,
) -> Settings:
    """
    설정 파일 + 환경 변수 → Settings.

    Raises:
        ConfigurationError: SETTINGS_NOT_FOUND (명시한 파일이 없음), SETTINGS_INVALID, UNKNOWN_PROVIDER
    """
    if config_path is not None and not config_path.exists():
        raise ConfigurationError(
            ErrorCodes.SETTINGS_NOT_FOUND,
            f"Settings file not found: {config_path}",
            path=str(config_path),
        )

    # 이미 설정된 환경 변수는 덮어쓰지 않음
    load_dotenv(env_file, override=False)

    resolved_path = config_path or DEFAULT_CONFIG_PATH
    data = load_config(resolved_path)
    base_dir = config_path.parent if config_path is not None else Path.cwd()

    providers = {}
    for name, raw in (data.get("providers") or {}).items():
        config = _parse_provider(name, raw or {})
        if config is not None:
            providers[config.kind] = config

    active = data.get("active_provider")
    active_kind = _coerce_kind(active) if active else None

    templates_cfg = data.get("templates") or {}
    library_cfg = data.get("library") or {}
    library_path = library_cfg.get("path")

    return Settings(
        active_provider=active_kind,
        providers=providers,
        analysis=_parse_analysis(data.get("analysis") or {}),
        templates_path=_resolve(base_dir, templates_cfg.get("path") or "prompts.yaml"),
        library_path=_resolve(base_dir, library_path) if library_path else None,
        log_level=str((data.get("logging") or {}).get("level", "INFO")).upper(),
    )


def _coerce_kind(name: str) -> ProviderKind:
    try:
        return ProviderKind(name)
    except ValueError:
        raise ConfigurationError(
            ErrorCodes.UNKNOWN_PROVIDER,
            f"Unknown provider type in settings: {name}",
            kind=name,
        ) from None


def _parse_provider(name: str, raw: dict[str, Any]) -> ProviderConfig | None:
    kind = _coerce_kind(name)
    env_name = raw.get("api_key_env") or DEFAULT_KEY_ENV[kind]
    api_key = raw.get("api_key") or os.environ.get(env_name, "")

    if not api_key:
        logger.info(f"Skipping provider {kind.value}: no API key (set {env_name})")
        return None

    try:
        return ProviderConfig(
            kind=kind,
            api_key=str(api_key),
            base_url=raw.get("base_url") or None,
            default_model=raw.get("default_model") or None,
            timeout_ms=int(raw.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
            max_retries=int(raw.get("max_retries", DEFAULT_MAX_RETRIES)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            ErrorCodes.SETTINGS_INVALID,
            f"Invalid settings for provider {kind.value}: {e}",
            kind=kind.value,
        ) from e


def _parse_analysis(raw: dict[str, Any]) -> AnalysisSettings:
    auto_create_note = raw.get("auto_create_note", True)
    if not isinstance(auto_create_note, bool):
        # YAML 불리언만 허용 (문자열 "false" 거부)
        raise ConfigurationError(
            ErrorCodes.SETTINGS_INVALID,
            f"analysis.auto_create_note must be true or false, got {auto_create_note!r}",
        )

    try:
        return AnalysisSettings(
            temperature=float(raw.get("temperature", DEFAULT_TEMPERATURE)),
            max_output_tokens=int(raw.get("max_output_tokens", DEFAULT_MAX_OUTPUT_TOKENS)),
            auto_create_note=auto_create_note,
            request_delay=float(raw.get("request_delay", REQUEST_DELAY_SECONDS)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            ErrorCodes.SETTINGS_INVALID,
            f"Invalid analysis settings: {e}",
        ) from e


def _resolve(base_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path
