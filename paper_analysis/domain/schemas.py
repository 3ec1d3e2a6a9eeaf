"""
Data schemas for the analysis pipeline.

규칙:
- AnalysisResult: content / error 중 정확히 하나만 의미 있음 (생성 시 검증)
- ExtractionStatus.success: 추출 성공 첨부 수로만 계산 (직접 설정 불가)
- BatchProgress: 콜백으로만 전달, 저장하지 않음
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from paper_analysis.providers.base import TokenUsage

# =============================================================================
# Extraction Schemas
# =============================================================================

class LinkMode(str, Enum):
    """첨부 파일 연결 방식."""
    STORED = "stored"          # 라이브러리 저장소 내부 사본
    LINKED = "linked"          # 외부 경로 링크
    LINKED_URL = "linked_url"  # 웹 링크 (파일 없음)
    EMBEDDED = "embedded"      # 노트 내장
    UNKNOWN = "unknown"


# 호스트 숫자 코드 → LinkMode
# 0 imported_file, 1 linked_file, 2 imported_url(snapshot), 3 linked_url, 4 embedded_image
HOST_LINK_MODES = {
    0: LinkMode.STORED,
    1: LinkMode.LINKED,
    2: LinkMode.STORED,
    3: LinkMode.LINKED_URL,
    4: LinkMode.EMBEDDED,
}


def resolve_link_mode(value: Any) -> LinkMode:
    """숫자 코드 또는 문자열 → LinkMode. 해석 불가면 UNKNOWN."""
    if isinstance(value, LinkMode):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return HOST_LINK_MODES.get(value, LinkMode.UNKNOWN)
    if isinstance(value, str):
        try:
            return LinkMode(value.strip().lower())
        except ValueError:
            return LinkMode.UNKNOWN
    return LinkMode.UNKNOWN


class ExtractionErrorKind(str, Enum):
    """
    첨부별 추출 실패 분류.

    file_not_found / linked_file_unavailable 구분은 조치 방법이 달라서 유지:
    저장 사본은 동기화, 링크 파일은 외부 경로 재설정.
    """
    FILE_NOT_FOUND = "file_not_found"
    CLOUD_PLACEHOLDER = "cloud_placeholder"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"
    EXTRACTION_FAILED = "extraction_failed"
    LINKED_FILE_UNAVAILABLE = "linked_file_unavailable"


@dataclass
class ExtractionIssue:
    """첨부 1개의 추출 에러."""
    attachment_id: str
    kind: ExtractionErrorKind
    message: str
    file_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attachment_id": self.attachment_id,
            "kind": self.kind.value,
            "message": self.message,
            "file_path": self.file_path,
        }


@dataclass
class AttachmentInfo:
    """진단용 첨부 정보 (실패해도 항상 기록)."""
    id: str
    link_mode: LinkMode = LinkMode.UNKNOWN
    path: str | None = None
    accessible: bool = False
    is_cloud_placeholder: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "link_mode": self.link_mode.value,
            "path": self.path,
            "accessible": self.accessible,
            "is_cloud_placeholder": self.is_cloud_placeholder,
        }


@dataclass
class ExtractionStatus:
    """
    추출 진단 리포트.

    success는 본문을 얻은 첨부 수(extracted_count)에서만 계산됨.
    """
    errors: list[ExtractionIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    attachments: list[AttachmentInfo] = field(default_factory=list)
    extracted_count: int = 0

    @property
    def success(self) -> bool:
        return self.extracted_count > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
            "attachments": [a.to_dict() for a in self.attachments],
        }


@dataclass
class ExtractedText:
    """
    문서 1건의 추출 결과.

    메타데이터는 본문 추출 성공 여부와 무관하게 항상 채워짐.
    호출마다 새로 생성, 캐시하지 않음.
    """
    title: str = ""
    authors: str = ""
    year: str = ""
    abstract: str = ""
    keywords: list[str] = field(default_factory=list)
    full_text: str | None = None
    publication: str | None = None
    doi: str | None = None
    extraction_status: ExtractionStatus = field(default_factory=ExtractionStatus)


# =============================================================================
# Analysis Schemas
# =============================================================================

@dataclass(frozen=True)
class AnalysisResult:
    """
    문서 1건 분석 결과 (불변).

    불변식:
    - 성공: content 비어 있지 않음, error 없음
    - 실패: error 비어 있지 않음, content == "", usage 없음
    """
    document_id: str
    template_id: str
    template_name: str
    content: str
    model: str
    provider_name: str
    timestamp: datetime
    usage: TokenUsage | None = None
    error: str | None = None
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "warnings", tuple(self.warnings))
        if self.error:
            if self.content or self.usage is not None:
                raise ValueError("Failed AnalysisResult must have empty content and no usage")
        elif not self.content:
            raise ValueError("AnalysisResult requires either content or error")

    @property
    def succeeded(self) -> bool:
        return not self.error

    @classmethod
    def failure(
        cls,
        document_id: str,
        template_id: str,
        error: str,
        template_name: str = "Unknown",
        warnings: tuple[str, ...] = (),
    ) -> "AnalysisResult":
        """에러 결과 생성 (model/provider 비움)."""
        return cls(
            document_id=document_id,
            template_id=template_id,
            template_name=template_name,
            content="",
            model="",
            provider_name="",
            timestamp=datetime.now(UTC),
            error=error or "Analysis failed",
            warnings=warnings,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화용."""
        return {
            "document_id": self.document_id,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "content": self.content,
            "model": self.model,
            "provider_name": self.provider_name,
            "timestamp": self.timestamp.isoformat(),
            "usage": self.usage.to_dict() if self.usage else None,
            "error": self.error,
            "warnings": list(self.warnings),
        }


class BatchStatus(str, Enum):
    """배치 항목 상태: pending → processing → (completed | failed)."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchProgress:
    """진행 상황 (콜백 전용)."""
    current: int
    total: int
    current_label: str
    status: BatchStatus


@dataclass(frozen=True)
class CostEstimate:
    """사전 토큰 예산 추정 (과금 정산용 아님)."""
    total_tokens: int
    document_count: int
    average_tokens_per_document: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_tokens": self.total_tokens,
            "document_count": self.document_count,
            "average_tokens_per_document": self.average_tokens_per_document,
        }


@dataclass(frozen=True)
class AnalysisPrecheck:
    """분석 시작 가능 여부 + 불가 사유."""
    can_start: bool
    reason: str | None = None
    code: str | None = None
