"""
Analysis Engine: 템플릿 + 추출 텍스트 + Provider Gateway → AnalysisResult.

규칙:
- analyze_one은 예외를 던지지 않음 (모든 실패 → AnalysisResult.error)
- analyze_batch는 엄격히 순차 실행, 항목 사이 고정 대기 (마지막 뒤에는 없음)
- 배치 단위 재시도 없음 (재시도는 Provider 내부 정책만)
- get_history는 저장된 노트에서 매번 재구성 (캐시 없음)
"""

import asyncio
import logging
import math
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from paper_analysis.core.config import AnalysisSettings
from paper_analysis.domain.constants import (
    AI_ANALYSIS_TAG,
    COST_OVERHEAD_TOKENS,
    LARGE_PROMPT_TOKENS,
    PROMPT_TAG_PREFIX,
    PROVIDER_TAG_PREFIX,
    SYSTEM_PROMPT,
)
from paper_analysis.domain.errors import ConfigurationError, ErrorCodes
from paper_analysis.domain.schemas import (
    AnalysisPrecheck,
    AnalysisResult,
    BatchProgress,
    BatchStatus,
    CostEstimate,
    ExtractedText,
    ExtractionErrorKind,
    LinkMode,
)
from paper_analysis.library.base import Document, DocumentStore
from paper_analysis.notes.creator import NoteCreator
from paper_analysis.notes.metadata import parse_metadata, strip_metadata
from paper_analysis.providers.base import ChatMessage, ChatRequest, ChatRole, ProviderError
from paper_analysis.providers.gateway import ProviderGateway
from paper_analysis.templates.manager import PromptTemplateStore

from .extract import TextExtractor, estimate_tokens

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchProgress], None]

METADATA_ONLY_WARNING = (
    "Full-text extraction failed; the analysis is based on metadata only "
    "(title, abstract, etc.) and may be incomplete."
)


def build_extraction_warnings(extracted: ExtractedText) -> list[str]:
    """추출 진단 → 사용자용 경고 문구."""
    status = extracted.extraction_status
    warnings = []

    if not extracted.full_text or not status.success:
        warnings.append(METADATA_ONLY_WARNING)

    for error in status.errors:
        path = error.file_path or "unknown"
        if error.kind == ExtractionErrorKind.CLOUD_PLACEHOLDER:
            warnings.append(
                "Cloud storage placeholder detected (OneDrive/Dropbox/Google Drive/iCloud). "
                f"Make sure the PDF is fully synced locally and retry. File: {path}"
            )
        elif error.kind == ExtractionErrorKind.LINKED_FILE_UNAVAILABLE:
            warnings.append(
                "Linked PDF is not accessible. Check that the file exists, the network "
                f"drive is online, and the linked base directory is configured. File: {path}"
            )
        elif error.kind == ExtractionErrorKind.FILE_NOT_FOUND:
            warnings.append(f"PDF file not found: {path}")
        elif error.kind == ExtractionErrorKind.PERMISSION_DENIED:
            warnings.append(f"No permission to read PDF file: {path}")
        elif error.kind == ExtractionErrorKind.NETWORK_ERROR:
            warnings.append(
                "Network error while reading the PDF. If the file is on a network drive, "
                "check the connection."
            )
        else:
            warnings.append(f"PDF extraction failed: {error.message}")

    warnings.extend(status.warnings)

    linked = [a for a in status.attachments if a.link_mode == LinkMode.LINKED]
    if linked and not status.success:
        logger.warning(
            f"Linked attachments detected but extraction failed: "
            f"{[a.path for a in linked]}"
        )

    return warnings


class AnalysisEngine:
    """
    분석 오케스트레이터.

    Usage:
        engine = AnalysisEngine(gateway, templates, library)
        results = await engine.analyze_batch(documents, "summary", on_progress=print)
        await engine.shutdown()
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        templates: PromptTemplateStore,
        store: DocumentStore,
        settings: AnalysisSettings | None = None,
        extractor: TextExtractor | None = None,
        note_creator: NoteCreator | None = None,
    ):
        """
        Args:
            gateway: Provider Gateway (활성 provider / 기본 모델 보유)
            templates: 프롬프트 템플릿 저장소
            store: 문서/노트 저장소
            settings: 분석 파라미터 (None이면 기본값)
            extractor: 텍스트 추출기 (None이면 store 기반 생성)
            note_creator: 노트 생성기 (auto_create_note일 때 사용, None이면 store 기반 생성)
        """
        self.gateway = gateway
        self.templates = templates
        self.store = store
        self.settings = settings or AnalysisSettings()
        self.extractor = extractor or TextExtractor(store)
        self.note_creator = note_creator or NoteCreator(store)

    # =========================================================================
    # Precheck
    # =========================================================================

    def can_start_analysis(self) -> AnalysisPrecheck:
        """네트워크 호출 없이 설정만 확인."""
        active = self.gateway.active_provider
        if active is None:
            return AnalysisPrecheck(
                can_start=False,
                reason="No LLM provider configured. Configure a provider and its API key first.",
                code=ErrorCodes.NO_ACTIVE_PROVIDER,
            )

        if not self.gateway.is_provider_configured(active):
            return AnalysisPrecheck(
                can_start=False,
                reason=f"API key for {active.value} is missing. Set the API key and save the configuration.",
                code=ErrorCodes.API_KEY_MISSING,
            )

        if not self.gateway.get_default_model(active):
            return AnalysisPrecheck(
                can_start=False,
                reason="No default model selected. Choose a model for the active provider.",
                code=ErrorCodes.NO_DEFAULT_MODEL,
            )

        return AnalysisPrecheck(can_start=True)

    # =========================================================================
    # Single document
    # =========================================================================

    async def analyze_one(self, document: Document, template_id: str) -> AnalysisResult:
        """
        문서 1건 분석. 예외를 던지지 않음.

        흐름: 템플릿 조회 → precheck → 추출 → 프롬프트 조립 → chat → (노트 생성)
        """
        template_name = "Unknown"
        warnings: list[str] = []

        try:
            template = self.templates.get(template_id)
            if template is None:
                raise ConfigurationError(
                    ErrorCodes.TEMPLATE_NOT_FOUND,
                    f"Template not found: {template_id}",
                    template_id=template_id,
                )
            template_name = template.name

            precheck = self.can_start_analysis()
            if not precheck.can_start:
                raise ConfigurationError(precheck.code or ErrorCodes.NOT_CONFIGURED, precheck.reason or "")

            extracted = self.extractor.extract(document)
            warnings = build_extraction_warnings(extracted)
            formatted = self.extractor.format_for_analysis(extracted)

            estimated = estimate_tokens(formatted)
            if estimated > LARGE_PROMPT_TOKENS:
                logger.warning(
                    f"Document {document.id} is large ({estimated} estimated tokens), "
                    f"the request may exceed the model context"
                )

            kind = self.gateway.active_provider
            model = self.gateway.get_default_model()
            request = ChatRequest(
                model=model,
                messages=(
                    ChatMessage(ChatRole.SYSTEM, SYSTEM_PROMPT),
                    ChatMessage(ChatRole.USER, f"{template.content}\n\n{formatted}"),
                ),
                temperature=self.settings.temperature,
                max_output_tokens=self.settings.max_output_tokens,
            )
            response = await self.gateway.chat(request)

        except (ConfigurationError, ProviderError) as e:
            logger.error(f"Analysis failed for document {document.id}: {e}")
            return AnalysisResult.failure(
                document.id, template_id, e.message, template_name, tuple(warnings)
            )
        except Exception as e:
            logger.error(f"Unexpected analysis error for document {document.id}: {e}", exc_info=True)
            return AnalysisResult.failure(
                document.id, template_id, str(e), template_name, tuple(warnings)
            )

        if not response.text.strip():
            return AnalysisResult.failure(
                document.id,
                template_id,
                f"Empty response from {kind.value}",
                template_name,
                tuple(warnings),
            )

        result = AnalysisResult(
            document_id=document.id,
            template_id=template.id,
            template_name=template.name,
            content=response.text,
            model=response.model or model,
            provider_name=kind.value,
            timestamp=datetime.now(UTC),
            usage=response.usage,
            warnings=tuple(warnings),
        )

        if self.settings.auto_create_note:
            self._save_note(result)
        return result

    def _save_note(self, result: AnalysisResult) -> None:
        """노트 저장 실패는 분석 결과에 영향 없음 (로그만)."""
        try:
            self.note_creator.create_note(result)
        except Exception as e:
            logger.error(f"Failed to save note for document {result.document_id}: {e}", exc_info=True)

    # =========================================================================
    # Batch
    # =========================================================================

    async def analyze_batch(
        self,
        documents: Sequence[Document],
        template_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[AnalysisResult]:
        """
        순차 배치 분석.

        - 항목마다 processing → completed/failed 진행 상황 전달
        - 개별 실패는 결과에 기록하고 계속 진행
        - 항목 경계 밖 예외(콜백 등)는 나머지를 중단하고 전파
        """
        results = []
        total = len(documents)

        for index, document in enumerate(documents, start=1):
            label = document.title or "Untitled"
            if on_progress:
                on_progress(BatchProgress(index, total, label, BatchStatus.PROCESSING))

            result = await self.analyze_one(document, template_id)
            results.append(result)

            if on_progress:
                status = BatchStatus.COMPLETED if result.succeeded else BatchStatus.FAILED
                on_progress(BatchProgress(index, total, label, status))

            if index < total:
                await asyncio.sleep(self.settings.request_delay)

        failed = sum(1 for r in results if not r.succeeded)
        logger.info(f"Batch finished: {total - failed}/{total} succeeded")
        return results

    # =========================================================================
    # Estimation / History
    # =========================================================================

    async def estimate_cost(
        self,
        documents: Sequence[Document],
        template_id: str,
    ) -> CostEstimate:
        """
        문서당 tokens(추출 텍스트) + tokens(템플릿) + 고정 오버헤드.

        Raises:
            ConfigurationError: TEMPLATE_NOT_FOUND
        """
        template = self.templates.get(template_id)
        if template is None:
            raise ConfigurationError(
                ErrorCodes.TEMPLATE_NOT_FOUND,
                f"Template not found: {template_id}",
                template_id=template_id,
            )

        template_tokens = estimate_tokens(template.content)
        total = 0
        for document in documents:
            formatted = self.extractor.format_for_analysis(self.extractor.extract(document))
            total += estimate_tokens(formatted) + template_tokens + COST_OVERHEAD_TOKENS

        count = len(documents)
        average = math.floor(total / count + 0.5) if count else 0
        return CostEstimate(
            total_tokens=total,
            document_count=count,
            average_tokens_per_document=average,
        )

    def get_history(self, document_id: str) -> list[AnalysisResult]:
        """ai-analysis 태그 노트 → AnalysisResult (최신순)."""
        results = []

        for annotation in self.store.get_annotations(document_id):
            if not annotation.has_tag(AI_ANALYSIS_TAG):
                continue

            content = strip_metadata(annotation.body)
            if not content:
                continue

            template_id = _tag_value(annotation.tags, PROMPT_TAG_PREFIX)
            metadata = parse_metadata(annotation.body)

            timestamp = (metadata.analyzed_datetime if metadata else None) or annotation.date_modified
            template_name = (metadata.template_name if metadata else "") or template_id or "Unknown"

            results.append(
                AnalysisResult(
                    document_id=document_id,
                    template_id=template_id or (metadata.template_id if metadata else ""),
                    template_name=template_name,
                    content=content,
                    model=metadata.model if metadata else "",
                    provider_name=(
                        (metadata.provider if metadata else "")
                        or _tag_value(annotation.tags, PROVIDER_TAG_PREFIX)
                    ),
                    timestamp=_as_utc(timestamp),
                    usage=metadata.token_usage if metadata else None,
                )
            )

        return sorted(results, key=lambda r: r.timestamp, reverse=True)

    async def shutdown(self) -> None:
        await self.gateway.shutdown()


def _tag_value(tags: list[str], prefix: str) -> str:
    for tag in tags:
        if tag.startswith(prefix):
            return tag[len(prefix):]
    return ""


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
