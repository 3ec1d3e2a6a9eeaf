"""
Note Creator: AnalysisResult → Markdown 노트 → DocumentStore.

태그:
- ai-analysis
- prompt:<template_id>
- provider:<provider>  (provider가 있을 때만)
"""

import logging

from paper_analysis.domain.constants import (
    AI_ANALYSIS_TAG,
    PROMPT_TAG_PREFIX,
    PROVIDER_TAG_PREFIX,
)
from paper_analysis.domain.schemas import AnalysisResult
from paper_analysis.library.base import Annotation, DocumentStore

from .metadata import format_metadata

logger = logging.getLogger(__name__)


def build_note_tags(result: AnalysisResult) -> list[str]:
    tags = [AI_ANALYSIS_TAG, f"{PROMPT_TAG_PREFIX}{result.template_id}"]
    if result.provider_name:
        tags.append(f"{PROVIDER_TAG_PREFIX}{result.provider_name}")
    return tags


def build_note_body(result: AnalysisResult) -> str:
    """
    Markdown 노트 본문.

    구성: 제목(템플릿 이름) → 분석 내용 → 추출 경고 → 메타데이터 목록 → 메타데이터 주석
    """
    parts = [f"# {result.template_name}\n", "\n", result.content.rstrip(), "\n\n"]

    if result.warnings:
        parts.append("## Extraction Warnings\n\n")
        parts.extend(f"- {warning}\n" for warning in result.warnings)
        parts.append("\n")

    parts.append("---\n\n")
    parts.append("## Analysis Metadata\n\n")
    parts.append(f"- **Analyzed at**: {result.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}\n")
    parts.append(f"- **Model**: {result.model}\n")
    parts.append(f"- **Provider**: {result.provider_name}\n")
    parts.append(f"- **Template**: {result.template_name}\n")

    if result.usage:
        parts.append(
            f"- **Token usage**: {result.usage.total_tokens} "
            f"(prompt: {result.usage.prompt_tokens}, "
            f"completion: {result.usage.completion_tokens})\n"
        )

    parts.append("\n---\n")
    parts.append("*Generated by paper-analysis*\n")
    parts.append(format_metadata(result) + "\n")

    return "".join(parts)


class NoteCreator:
    """분석 결과를 노트로 저장."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def create_note(self, result: AnalysisResult) -> Annotation:
        """
        성공 결과 1건 → 노트.

        Raises:
            ValueError: 실패 결과
            LibraryError 등: 저장소 에러 그대로 전파
        """
        if not result.succeeded:
            raise ValueError(
                f"Cannot create a note for a failed analysis: {result.error}"
            )

        annotation = self._store.add_annotation(
            result.document_id,
            build_note_body(result),
            build_note_tags(result),
        )
        logger.info(f"Created note {annotation.id} for document {result.document_id}")
        return annotation

    def create_batch_notes(self, results: list[AnalysisResult]) -> list[Annotation]:
        """실패 결과는 건너뜀. 저장 실패는 기록 후 다음 항목 계속."""
        notes = []
        for result in results:
            if not result.succeeded:
                logger.warning(
                    f"Skipping note creation for failed analysis of "
                    f"{result.document_id}: {result.error}"
                )
                continue
            try:
                notes.append(self.create_note(result))
            except Exception as e:
                logger.error(
                    f"Failed to create note for document {result.document_id}: {e}",
                    exc_info=True,
                )
        return notes
