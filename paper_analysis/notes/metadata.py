"""
노트 본문에 내장되는 구조화 메타데이터.

포맷 (schema_version 1):
    <!-- paper-analysis:{"schema_version": 1, "analyzed_at": "...", "model": "...",
         "provider": "...", "template_id": "...", "template_name": "...",
         "token_usage": {"prompt": 10, "completion": 20, "total": 30}} -->

파싱 순서:
1. paper-analysis 주석 (또는 구버전 AIPaperAnalysis 주석, camelCase 키)
2. 주석이 없거나 JSON이 깨졌으면 본문의 Model / Provider / Template 줄을 정규식으로 추출
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from paper_analysis.domain.constants import (
    LEGACY_METADATA_MARKER,
    METADATA_MARKER,
    METADATA_SCHEMA_VERSION,
)
from paper_analysis.domain.schemas import AnalysisResult
from paper_analysis.providers.base import TokenUsage

logger = logging.getLogger(__name__)

METADATA_COMMENT_PATTERN = re.compile(
    rf"<!--\s*(?:{METADATA_MARKER}|{LEGACY_METADATA_MARKER}):(.+?)-->",
    re.DOTALL,
)

# 구버전 노트의 라벨(중국어)도 허용
_FALLBACK_PATTERNS = {
    "model": re.compile(r"(?:Model|使用模型)\**\s*[:：]\s*\**\s*(.+)"),
    "provider": re.compile(r"(?:Provider|提供商)\**\s*[:：]\s*\**\s*(.+)"),
    "template_name": re.compile(r"(?:Template|提示词)\**\s*[:：]\s*\**\s*(.+)"),
}


@dataclass(frozen=True)
class NoteMetadata:
    """노트 메타데이터 (versioned)."""
    schema_version: int = METADATA_SCHEMA_VERSION
    analyzed_at: str = ""
    model: str = ""
    provider: str = ""
    template_id: str = ""
    template_name: str = ""
    token_usage: TokenUsage | None = None

    @property
    def analyzed_datetime(self) -> datetime | None:
        if not self.analyzed_at:
            return None
        try:
            return datetime.fromisoformat(self.analyzed_at.replace("Z", "+00:00"))
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        usage = self.token_usage
        return {
            "schema_version": self.schema_version,
            "analyzed_at": self.analyzed_at,
            "model": self.model,
            "provider": self.provider,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "token_usage": {
                "prompt": usage.prompt_tokens,
                "completion": usage.completion_tokens,
                "total": usage.total_tokens,
            } if usage else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NoteMetadata":
        """현재 스키마 + 구버전 camelCase 키 모두 허용."""
        raw_usage = data.get("token_usage") or data.get("tokenUsage")
        usage = None
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                prompt_tokens=int(raw_usage.get("prompt", 0) or 0),
                completion_tokens=int(raw_usage.get("completion", 0) or 0),
                total_tokens=int(raw_usage.get("total", 0) or 0),
            )

        return cls(
            schema_version=int(data.get("schema_version", 0) or 0),
            analyzed_at=str(data.get("analyzed_at") or data.get("analyzedAt") or ""),
            model=str(data.get("model") or ""),
            provider=str(data.get("provider") or ""),
            template_id=str(data.get("template_id") or ""),
            template_name=str(data.get("template_name") or data.get("promptName") or ""),
            token_usage=usage,
        )


def build_metadata(result: AnalysisResult) -> NoteMetadata:
    return NoteMetadata(
        analyzed_at=result.timestamp.isoformat(),
        model=result.model,
        provider=result.provider_name,
        template_id=result.template_id,
        template_name=result.template_name,
        token_usage=result.usage,
    )


def format_metadata(result: AnalysisResult) -> str:
    """AnalysisResult → 메타데이터 주석 1줄."""
    payload = json.dumps(build_metadata(result).to_dict(), ensure_ascii=False)
    # JSON 안의 "-->" 가 주석을 닫지 않도록
    payload = payload.replace("-->", "--\\u003e")
    return f"<!-- {METADATA_MARKER}:{payload} -->"


def parse_metadata(body: str) -> NoteMetadata | None:
    """
    노트 본문 → NoteMetadata.

    Returns:
        복원 가능한 정보가 전혀 없으면 None
    """
    if not body:
        return None

    match = METADATA_COMMENT_PATTERN.search(body)
    if match:
        try:
            data = json.loads(match.group(1).strip())
        except json.JSONDecodeError as e:
            logger.debug(f"Malformed metadata comment, falling back to text: {e}")
        else:
            if isinstance(data, dict):
                return NoteMetadata.from_dict(data)

    found = {}
    for key, pattern in _FALLBACK_PATTERNS.items():
        field_match = pattern.search(body)
        if field_match:
            found[key] = field_match.group(1).strip()

    if not found:
        return None
    return NoteMetadata(schema_version=0, **found)


def strip_metadata(body: str) -> str:
    """메타데이터 주석 제거."""
    return METADATA_COMMENT_PATTERN.sub("", body).rstrip()
