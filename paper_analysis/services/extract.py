"""
Text Extraction Service: 문서 → 분석용 텍스트 + 진단 리포트.

첨부(PDF)별 fallback 체인:
1. link mode + 파일 경로 해석
2. 경로 없음/파일 없음 → file_not_found (stored) / linked_file_unavailable (linked)
3. 클라우드 placeholder 판정 → cloud_placeholder, 읽기 시도 안 함
4. 호스트 전문 색인 캐시 (미색인이면 색인 후 1회 재시도)
5. 직접 바이너리 읽기 + 정규화
6. 둘 다 비었지만 파일 접근 가능 → warning (error 아님)

추출 에러는 예외로 전파하지 않음. 모두 ExtractionStatus에 기록.
"""

import errno
import logging
import math
import os
import re
from dataclasses import dataclass
from pathlib import Path

from paper_analysis.domain.constants import (
    CLOUD_PLACEHOLDER_MAX_BYTES,
    MAX_FULLTEXT_CHARS,
    PDF_CONTENT_TYPE,
    TRUNCATION_MARKER,
)
from paper_analysis.domain.schemas import (
    AttachmentInfo,
    ExtractedText,
    ExtractionErrorKind,
    ExtractionIssue,
    ExtractionStatus,
    LinkMode,
    resolve_link_mode,
)
from paper_analysis.library.base import Attachment, Document, DocumentStore, IndexState

logger = logging.getLogger(__name__)

# =============================================================================
# Text helpers
# =============================================================================

YEAR_PATTERN = re.compile(r"\d{4}")
CJK_PATTERN = re.compile(r"[\u4e00-\u9fa5]")
PDF_MAGIC = b"%PDF"

# 허용 문자: 단어 문자, 공백, CJK, 기본 구두점
_DISALLOWED_CHARS = re.compile(r"[^\w\s\u4e00-\u9fa5.,;:!?()\[\]{}\"'\-]")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_BLANK_LINE_RUNS = re.compile(r"\n{3,}")

NETWORK_ERRNOS = frozenset({
    errno.ETIMEDOUT,
    errno.ECONNRESET,
    errno.ECONNREFUSED,
    errno.ENETDOWN,
    errno.ENETUNREACH,
    errno.EHOSTDOWN,
    errno.EHOSTUNREACH,
})


def clean_text(text: str) -> str:
    """
    추출 텍스트 정규화.

    - 허용 집합 밖 문자 제거
    - 줄 내부 공백 연속 → 공백 1개
    - 빈 줄 3개 이상 → 문단 구분 1개
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _DISALLOWED_CHARS.sub("", text)
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _BLANK_LINE_RUNS.sub("\n\n", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """
    대략적 토큰 수.

    CJK(U+4E00–U+9FA5) 1.5자당 1토큰, 그 외 4자당 1토큰, 합계 올림.
    """
    cjk_count = len(CJK_PATTERN.findall(text))
    other_count = len(text) - cjk_count
    return math.ceil(cjk_count / 1.5 + other_count / 4)


def detect_cloud_placeholder(path: str, size: int | None) -> bool:
    """
    클라우드 동기화 stub 판정.

    - .icloud 확장자 → 항상 placeholder
    - OneDrive / Google Drive 경로 + 1KB 미만
    - Dropbox 경로 + 0 byte
    - 크기를 알 수 없으면 placeholder 아님
    """
    if path.endswith(".icloud"):
        return True

    is_onedrive = "OneDrive" in path or "onedrive" in path
    is_dropbox = "Dropbox" in path or "dropbox" in path
    is_google_drive = "Google Drive" in path or "GoogleDrive" in path

    if size is None:
        return False
    if is_onedrive and size < CLOUD_PLACEHOLDER_MAX_BYTES:
        return True
    if is_dropbox and size == 0:
        return True
    if is_google_drive and size < CLOUD_PLACEHOLDER_MAX_BYTES:
        return True
    return False


def classify_exception(error: Exception) -> ExtractionErrorKind:
    """첨부 처리 중 예외 → 에러 분류."""
    if isinstance(error, PermissionError):
        return ExtractionErrorKind.PERMISSION_DENIED
    if isinstance(error, (TimeoutError, ConnectionError)):
        return ExtractionErrorKind.NETWORK_ERROR
    if isinstance(error, OSError) and error.errno in NETWORK_ERRNOS:
        return ExtractionErrorKind.NETWORK_ERROR
    return ExtractionErrorKind.EXTRACTION_FAILED


def _file_size(path: Path) -> int | None:
    try:
        return os.stat(path).st_size
    except OSError as e:
        logger.warning(f"Failed to get file size for {path}: {e}")
        return None


# =============================================================================
# Extractor
# =============================================================================

@dataclass
class _AttachmentOutcome:
    info: AttachmentInfo
    text: str = ""
    error: ExtractionIssue | None = None
    warning: str | None = None


class TextExtractor:
    """
    문서 텍스트 추출기.

    Usage:
        extractor = TextExtractor(library)
        extracted = extractor.extract(document)
        prompt_body = extractor.format_for_analysis(extracted)
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    def extract(self, document: Document) -> ExtractedText:
        """
        메타데이터 + 본문 추출. 예외를 던지지 않음.

        메타데이터는 첨부 추출 결과와 무관하게 항상 채움.
        """
        extracted = ExtractedText(
            title=document.title or "",
            authors=", ".join(
                name for name in (c.full_name for c in document.creators) if name
            ),
            year=_extract_year(document.date),
            abstract=document.abstract or "",
            keywords=list(document.tags),
            publication=document.publication or None,
            doi=document.doi or None,
        )

        status = extracted.extraction_status
        full_text = self._extract_attachments(document, status)
        if full_text:
            extracted.full_text = full_text

        if status.errors or status.warnings:
            logger.warning(
                f"Extraction issues for document {document.id}: "
                f"{len(status.errors)} errors, {len(status.warnings)} warnings"
            )
        return extracted

    def _extract_attachments(self, document: Document, status: ExtractionStatus) -> str:
        if not document.attachment_ids:
            status.warnings.append("No attachments found")
            return ""

        text_parts: list[str] = []
        pdf_count = 0

        for attachment_id in document.attachment_ids:
            attachment = self._store.get_attachment(attachment_id)
            if attachment is None:
                status.warnings.append(f"Attachment {attachment_id} not found")
                continue

            if attachment.content_type != PDF_CONTENT_TYPE:
                continue
            pdf_count += 1

            outcome = self._extract_attachment(attachment)
            status.attachments.append(outcome.info)
            if outcome.text:
                text_parts.append(outcome.text)
                status.extracted_count += 1
            if outcome.error:
                status.errors.append(outcome.error)
            if outcome.warning:
                status.warnings.append(outcome.warning)

        if pdf_count == 0:
            status.warnings.append("No PDF attachments found")

        return "\n\n".join(text_parts)

    def _extract_attachment(self, attachment: Attachment) -> _AttachmentOutcome:
        link_mode = resolve_link_mode(attachment.link_mode)
        info = AttachmentInfo(id=attachment.id, link_mode=link_mode)

        try:
            path = self._store.get_file_path(attachment)
            if path is None:
                return _AttachmentOutcome(
                    info,
                    error=ExtractionIssue(
                        attachment.id,
                        ExtractionErrorKind.FILE_NOT_FOUND,
                        "No file path available for attachment",
                    ),
                )

            info.path = str(path)

            if not path.exists():
                kind = (
                    ExtractionErrorKind.LINKED_FILE_UNAVAILABLE
                    if link_mode == LinkMode.LINKED
                    else ExtractionErrorKind.FILE_NOT_FOUND
                )
                return _AttachmentOutcome(
                    info,
                    error=ExtractionIssue(
                        attachment.id, kind, f"File not found: {path}", str(path)
                    ),
                )

            if detect_cloud_placeholder(str(path), _file_size(path)):
                info.is_cloud_placeholder = True
                return _AttachmentOutcome(
                    info,
                    error=ExtractionIssue(
                        attachment.id,
                        ExtractionErrorKind.CLOUD_PLACEHOLDER,
                        "File appears to be a cloud storage placeholder. "
                        "Please make sure the file is fully synced.",
                        str(path),
                    ),
                )

            info.accessible = True

            text = self._read_from_index(attachment) or self._read_direct(path)
            if text:
                return _AttachmentOutcome(info, text=text)

            return _AttachmentOutcome(
                info,
                warning=f"PDF content extraction failed for {path}, but file is accessible",
            )

        except Exception as e:
            logger.warning(f"Failed to extract attachment {attachment.id}: {e}", exc_info=True)
            return _AttachmentOutcome(
                info,
                error=ExtractionIssue(
                    attachment.id,
                    classify_exception(e),
                    str(e) or type(e).__name__,
                    info.path,
                ),
            )

    def _read_from_index(self, attachment: Attachment) -> str:
        """색인 캐시 읽기. 미색인이면 색인 후 1회 재시도."""
        state = self._store.get_index_state(attachment)

        if state == IndexState.UNINDEXED:
            self._store.index_attachment(attachment)
        elif state != IndexState.INDEXED:
            return ""

        try:
            cached = self._store.read_index_cache(attachment)
        except OSError as e:
            logger.warning(f"Failed to read index cache for {attachment.id}: {e}")
            return ""
        return clean_text(cached) if cached else ""

    def _read_direct(self, path: Path) -> str:
        """평문 첨부 직접 읽기. PDF 바이너리는 디코딩하지 않음 (색인 캐시만 사용)."""
        content = self._store.read_file(path)
        if not content:
            return ""
        if content.lstrip()[:4] == PDF_MAGIC:
            logger.warning(f"No text layer available for {path}: PDF binary is not decoded directly")
            return ""
        return clean_text(content.decode("utf-8", errors="replace"))

    # =========================================================================
    # Formatting
    # =========================================================================

    def format_for_analysis(self, extracted: ExtractedText) -> str:
        """
        분석 요청용 문서 조립.

        순서: 메타데이터 헤더 → 초록 → 본문 (MAX_FULLTEXT_CHARS 초과분 절단 + 마커)
        """
        parts = ["# Document Information\n"]

        if extracted.title:
            parts.append(f"**Title**: {extracted.title}\n")
        if extracted.authors:
            parts.append(f"**Authors**: {extracted.authors}\n")
        if extracted.year:
            parts.append(f"**Year**: {extracted.year}\n")
        if extracted.publication:
            parts.append(f"**Publication**: {extracted.publication}\n")
        if extracted.doi:
            parts.append(f"**DOI**: {extracted.doi}\n")
        if extracted.keywords:
            parts.append(f"**Keywords**: {', '.join(extracted.keywords)}\n")

        if extracted.abstract:
            parts.append("\n## Abstract\n")
            parts.append(extracted.abstract + "\n")

        if extracted.full_text:
            parts.append("\n## Full Text\n")
            full_text = extracted.full_text
            if len(full_text) > MAX_FULLTEXT_CHARS:
                full_text = full_text[:MAX_FULLTEXT_CHARS] + TRUNCATION_MARKER
            parts.append(full_text + "\n")

        return "".join(parts)

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)


def _extract_year(date: str) -> str:
    """자유 형식 날짜에서 첫 4자리 숫자."""
    if not date:
        return ""
    match = YEAR_PATTERN.search(date)
    return match.group(0) if match else ""
