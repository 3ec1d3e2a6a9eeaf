"""
Document store 인터페이스.

추출기/분석 엔진/노트 생성기가 사용하는 호스트 라이브러리 계약:
- 문서/첨부 조회, 첨부 파일 경로 해석, 바이너리 읽기
- 전문 색인 캐시 (상태 조회, 색인, 캐시 읽기)
- 태그 기반 노트(annotation) 저장/조회
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol


class IndexState(str, Enum):
    """첨부 전문 색인 상태."""
    UNAVAILABLE = "unavailable"  # 색인 불가 (파일 없음 등)
    UNINDEXED = "unindexed"
    PARTIAL = "partial"
    INDEXED = "indexed"


@dataclass
class Creator:
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass
class Document:
    """라이브러리 항목 (논문 1편)."""
    id: str
    title: str = ""
    creators: list[Creator] = field(default_factory=list)
    date: str = ""
    abstract: str = ""
    tags: list[str] = field(default_factory=list)
    publication: str | None = None
    doi: str | None = None
    attachment_ids: list[str] = field(default_factory=list)


@dataclass
class Attachment:
    """
    첨부 파일.

    link_mode: 호스트 숫자 코드(0-4) 또는 LinkMode 문자열.
    """
    id: str
    parent_id: str
    content_type: str = ""
    link_mode: int | str | None = None
    path: str | None = None
    title: str = ""


@dataclass
class Annotation:
    """문서에 붙은 노트."""
    id: str
    document_id: str
    body: str
    tags: list[str] = field(default_factory=list)
    date_modified: datetime | None = None

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


class DocumentStore(Protocol):
    """호스트 라이브러리 계약."""

    def get_document(self, document_id: str) -> Document | None: ...

    def get_attachment(self, attachment_id: str) -> Attachment | None: ...

    def get_file_path(self, attachment: Attachment) -> Path | None: ...

    def read_file(self, path: Path) -> bytes: ...

    def get_index_state(self, attachment: Attachment) -> IndexState: ...

    def index_attachment(self, attachment: Attachment) -> None: ...

    def read_index_cache(self, attachment: Attachment) -> str | None: ...

    def get_annotations(self, document_id: str) -> list[Annotation]: ...

    def add_annotation(
        self,
        document_id: str,
        body: str,
        tags: list[str],
    ) -> Annotation: ...
