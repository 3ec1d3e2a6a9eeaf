"""
로컬 파일 기반 DocumentStore.

구조:
<root>/
├── library.yaml        # 문서 + 첨부 manifest
├── annotations.json    # 노트 (원자적 쓰기, filelock)
├── .fulltext/          # 첨부별 전문 색인 캐시 (<attachment_id>.txt)
└── storage/            # stored 첨부 (manifest에서 상대 경로)

library.yaml 예:
    linked_base_dir: /mnt/papers      # linked 첨부의 상대 경로 기준 (선택)
    documents:
      - id: DOC-1
        title: Attention Is All You Need
        creators: [{first_name: Ashish, last_name: Vaswani}]
        date: "2017-06-12"
        tags: [transformer]
        attachments:
          - id: ATT-1
            content_type: application/pdf
            link_mode: stored
            path: storage/ATT-1/paper.pdf
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock, Timeout
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from paper_analysis.core.ids import generate_annotation_id
from paper_analysis.core.storage import atomic_write_json, read_json
from paper_analysis.domain.constants import PDF_CONTENT_TYPE
from paper_analysis.domain.errors import ErrorCodes
from paper_analysis.domain.schemas import LinkMode, resolve_link_mode

from .base import Annotation, Attachment, Creator, Document, IndexState

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "library.yaml"
ANNOTATIONS_FILENAME = "annotations.json"
FULLTEXT_DIR = ".fulltext"


class LibraryError(Exception):
    """로컬 라이브러리 에러."""

    def __init__(self, code: str, message: str, **context: Any) -> None:
        self.code = code
        self.message = message
        self.context = context
        super().__init__(f"[{code}] {message}")


class LocalLibrary:
    """
    YAML manifest 기반 라이브러리.

    manifest는 생성 시 1회 로드 (live reload 없음).
    노트만 쓰기 가능.
    """

    LOCK_TIMEOUT = 10.0

    def __init__(self, root: Path):
        """
        Args:
            root: 라이브러리 루트 (library.yaml 위치)

        Raises:
            LibraryError: LIBRARY_NOT_FOUND, LIBRARY_CORRUPT
        """
        self.root = Path(root)
        self.annotations_path = self.root / ANNOTATIONS_FILENAME
        self.fulltext_dir = self.root / FULLTEXT_DIR
        self.linked_base_dir: Path | None = None
        self._documents: dict[str, Document] = {}
        self._attachments: dict[str, Attachment] = {}
        self._load_manifest()

    # =========================================================================
    # Manifest
    # =========================================================================

    def _load_manifest(self) -> None:
        manifest_path = self.root / MANIFEST_FILENAME
        if not manifest_path.exists():
            raise LibraryError(
                ErrorCodes.LIBRARY_NOT_FOUND,
                f"Library manifest not found: {manifest_path}",
                path=str(manifest_path),
            )

        try:
            with open(manifest_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise LibraryError(
                ErrorCodes.LIBRARY_CORRUPT,
                f"Invalid library manifest: {e}",
                path=str(manifest_path),
            ) from e

        if not isinstance(data, dict) or not isinstance(data.get("documents", []), list):
            raise LibraryError(
                ErrorCodes.LIBRARY_CORRUPT,
                "Library manifest must contain a 'documents' list",
                path=str(manifest_path),
            )

        base_dir = data.get("linked_base_dir")
        if base_dir:
            self.linked_base_dir = Path(base_dir).expanduser()

        for entry in data.get("documents") or []:
            document = self._parse_document(entry)
            self._documents[document.id] = document

    def _parse_document(self, entry: dict[str, Any]) -> Document:
        if not isinstance(entry, dict) or not entry.get("id"):
            raise LibraryError(
                ErrorCodes.LIBRARY_CORRUPT,
                "Every document entry requires an 'id'",
                entry=str(entry),
            )

        document_id = str(entry["id"])
        attachment_ids = []
        for raw in entry.get("attachments") or []:
            attachment = Attachment(
                id=str(raw["id"]),
                parent_id=document_id,
                content_type=raw.get("content_type", ""),
                link_mode=raw.get("link_mode"),
                path=raw.get("path"),
                title=raw.get("title", ""),
            )
            self._attachments[attachment.id] = attachment
            attachment_ids.append(attachment.id)

        return Document(
            id=document_id,
            title=entry.get("title") or "",
            creators=[
                Creator(
                    first_name=c.get("first_name") or "",
                    last_name=c.get("last_name") or "",
                )
                for c in entry.get("creators") or []
            ],
            date=str(entry.get("date") or ""),
            abstract=entry.get("abstract") or "",
            tags=[str(t) for t in entry.get("tags") or []],
            publication=entry.get("publication"),
            doi=entry.get("doi"),
            attachment_ids=attachment_ids,
        )

    def list_documents(self) -> list[Document]:
        return list(self._documents.values())

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def get_attachment(self, attachment_id: str) -> Attachment | None:
        return self._attachments.get(attachment_id)

    # =========================================================================
    # Files
    # =========================================================================

    def get_file_path(self, attachment: Attachment) -> Path | None:
        """
        첨부 파일 경로 해석.

        - stored: 라이브러리 루트 기준
        - linked: 절대 경로 또는 linked_base_dir 기준
        - linked_url / embedded: 파일 없음
        """
        if not attachment.path:
            return None

        mode = resolve_link_mode(attachment.link_mode)
        path = Path(attachment.path).expanduser()

        if mode == LinkMode.STORED:
            return path if path.is_absolute() else self.root / path
        if mode == LinkMode.LINKED:
            if path.is_absolute():
                return path
            return (self.linked_base_dir or self.root) / path
        return None

    def read_file(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    # =========================================================================
    # Full-text index
    # =========================================================================

    def _cache_path(self, attachment: Attachment) -> Path:
        return self.fulltext_dir / f"{attachment.id}.txt"

    def get_index_state(self, attachment: Attachment) -> IndexState:
        if self._cache_path(attachment).exists():
            return IndexState.INDEXED
        if attachment.content_type != PDF_CONTENT_TYPE:
            return IndexState.UNAVAILABLE
        path = self.get_file_path(attachment)
        if path is None or not path.exists():
            return IndexState.UNAVAILABLE
        return IndexState.UNINDEXED

    def index_attachment(self, attachment: Attachment) -> None:
        """
        PDF 텍스트 추출 → .fulltext/<id>.txt.

        파싱 불가 PDF는 경고만 남김 (캐시 미생성, 호출자가 다른 경로로 대체).
        파일 접근 에러(OSError)는 전파.
        """
        path = self.get_file_path(attachment)
        if path is None:
            return

        try:
            reader = PdfReader(str(path))
            pages = []
            for page in reader.pages:
                page_text = (page.extract_text() or "").strip()
                if page_text:
                    pages.append(page_text)
        except PdfReadError as e:
            logger.warning(f"Failed to index attachment {attachment.id}: {e}")
            return

        if not pages:
            logger.info(f"No extractable text in attachment {attachment.id}")
            return

        self.fulltext_dir.mkdir(parents=True, exist_ok=True)
        self._cache_path(attachment).write_text("\n\n".join(pages), encoding="utf-8")
        logger.debug(f"Indexed attachment {attachment.id} ({len(pages)} pages)")

    def read_index_cache(self, attachment: Attachment) -> str | None:
        cache_path = self._cache_path(attachment)
        if not cache_path.exists():
            return None
        return cache_path.read_text(encoding="utf-8", errors="replace")

    # =========================================================================
    # Annotations
    # =========================================================================

    @contextmanager
    def _annotations_lock(self) -> Generator[None, None, None]:
        """
        annotations.json 쓰기 락.

        Raises:
            LibraryError: ANNOTATION_LOCK_TIMEOUT
        """
        self.root.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.root / f"{ANNOTATIONS_FILENAME}.lock", timeout=self.LOCK_TIMEOUT)

        try:
            lock.acquire()
            yield
        except Timeout:
            raise LibraryError(
                ErrorCodes.ANNOTATION_LOCK_TIMEOUT,
                "Failed to acquire annotations lock",
                timeout=self.LOCK_TIMEOUT,
            )
        finally:
            lock.release()

    def _load_annotations(self) -> list[dict[str, Any]]:
        data = read_json(self.annotations_path, default={}) or {}
        return list(data.get("annotations", []))

    def get_annotations(self, document_id: str) -> list[Annotation]:
        return [
            _annotation_from_dict(raw)
            for raw in self._load_annotations()
            if raw.get("document_id") == document_id
        ]

    def add_annotation(
        self,
        document_id: str,
        body: str,
        tags: list[str],
    ) -> Annotation:
        """
        노트 추가.

        Raises:
            LibraryError: DOCUMENT_NOT_FOUND, ANNOTATION_LOCK_TIMEOUT
        """
        if document_id not in self._documents:
            raise LibraryError(
                ErrorCodes.DOCUMENT_NOT_FOUND,
                f"Document not found: {document_id}",
                document_id=document_id,
            )

        annotation = Annotation(
            id=generate_annotation_id(),
            document_id=document_id,
            body=body,
            tags=list(tags),
            date_modified=datetime.now(UTC),
        )

        with self._annotations_lock():
            annotations = self._load_annotations()
            annotations.append(_annotation_to_dict(annotation))
            atomic_write_json(self.annotations_path, {"annotations": annotations})

        logger.info(f"Created annotation {annotation.id} for document {document_id}")
        return annotation


def _annotation_to_dict(annotation: Annotation) -> dict[str, Any]:
    return {
        "id": annotation.id,
        "document_id": annotation.document_id,
        "body": annotation.body,
        "tags": list(annotation.tags),
        "date_modified": annotation.date_modified.isoformat() if annotation.date_modified else None,
    }


def _annotation_from_dict(raw: dict[str, Any]) -> Annotation:
    modified = raw.get("date_modified")
    return Annotation(
        id=raw["id"],
        document_id=raw["document_id"],
        body=raw.get("body", ""),
        tags=list(raw.get("tags", [])),
        date_modified=datetime.fromisoformat(modified) if modified else None,
    )
