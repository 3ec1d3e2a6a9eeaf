"""
Pytest fixtures for the paper-analysis tests.

테스트 구성:
- 정상 케이스 / 실패 케이스 분리
- 네트워크 없음: Provider는 MockTransport 또는 mock SDK 클라이언트 주입
- 라이브러리는 tmp_path 아래 library.yaml로 생성
"""

from pathlib import Path
from typing import Any

import pytest
import yaml

from paper_analysis.library.base import Annotation, Attachment, Document, IndexState
from paper_analysis.providers.base import (
    ChatRequest,
    ChatResponse,
    LLMProvider,
    ModelInfo,
    ProviderConfig,
    ProviderKind,
    TokenUsage,
)
from paper_analysis.templates.manager import PromptTemplateStore

# =============================================================================
# Path Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config_path(project_root: Path) -> Path:
    """패키지 내장 default.yaml 경로."""
    return project_root / "paper_analysis" / "default.yaml"


# =============================================================================
# Library Fixtures
# =============================================================================

def write_library(root: Path, documents: list[dict[str, Any]], **extra: Any) -> Path:
    """library.yaml 작성 후 루트 반환."""
    root.mkdir(parents=True, exist_ok=True)
    manifest = {"documents": documents, **extra}
    (root / "library.yaml").write_text(
        yaml.safe_dump(manifest, allow_unicode=True, sort_keys=False),
        encoding="utf-8",
    )
    return root


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    """
    정상 케이스 라이브러리.

    포함:
    - DOC-1: stored PDF + 전문 색인 캐시
    - DOC-2: 첨부 없음 (메타데이터만)
    """
    root = tmp_path / "library"
    pdf_dir = root / "storage" / "ATT-1"
    pdf_dir.mkdir(parents=True)
    (pdf_dir / "paper.pdf").write_bytes(b"%PDF-1.4 fake")

    fulltext = root / ".fulltext"
    fulltext.mkdir()
    (fulltext / "ATT-1.txt").write_text(
        "Transformers   rely on attention.\n\n\n\nNo recurrence is used.",
        encoding="utf-8",
    )

    return write_library(
        root,
        [
            {
                "id": "DOC-1",
                "title": "Attention Is All You Need",
                "creators": [
                    {"first_name": "Ashish", "last_name": "Vaswani"},
                    {"first_name": "Noam", "last_name": "Shazeer"},
                ],
                "date": "June 2017",
                "abstract": "We propose the Transformer.",
                "tags": ["transformer", "nlp"],
                "publication": "NeurIPS",
                "doi": "10.5555/3295222.3295349",
                "attachments": [
                    {
                        "id": "ATT-1",
                        "content_type": "application/pdf",
                        "link_mode": "stored",
                        "path": "storage/ATT-1/paper.pdf",
                    }
                ],
            },
            {
                "id": "DOC-2",
                "title": "Metadata Only Paper",
                "date": "2020",
                "abstract": "An abstract without attachments.",
            },
        ],
    )


# =============================================================================
# In-memory Store
# =============================================================================

class FakeStore:
    """
    메모리 DocumentStore.

    파일 경로는 attachment.path 그대로 사용 (tmp_path 아래 실제 파일)
    index: attachment_id → 캐시 텍스트
    """

    def __init__(self) -> None:
        self.documents: dict[str, Document] = {}
        self.attachments: dict[str, Attachment] = {}
        self.index: dict[str, str] = {}
        self.index_states: dict[str, IndexState] = {}
        self.indexed_calls: list[str] = []
        self.annotations: list[Annotation] = []
        self.add_error: Exception | None = None

    def add_document(self, document: Document, attachments: tuple[Attachment, ...] = ()) -> Document:
        self.documents[document.id] = document
        for attachment in attachments:
            self.attachments[attachment.id] = attachment
            document.attachment_ids.append(attachment.id)
        return document

    def get_document(self, document_id: str) -> Document | None:
        return self.documents.get(document_id)

    def get_attachment(self, attachment_id: str) -> Attachment | None:
        return self.attachments.get(attachment_id)

    def get_file_path(self, attachment: Attachment) -> Path | None:
        return Path(attachment.path) if attachment.path else None

    def read_file(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def get_index_state(self, attachment: Attachment) -> IndexState:
        if attachment.id in self.index:
            return IndexState.INDEXED
        return self.index_states.get(attachment.id, IndexState.UNAVAILABLE)

    def index_attachment(self, attachment: Attachment) -> None:
        self.indexed_calls.append(attachment.id)

    def read_index_cache(self, attachment: Attachment) -> str | None:
        return self.index.get(attachment.id)

    def get_annotations(self, document_id: str) -> list[Annotation]:
        return [a for a in self.annotations if a.document_id == document_id]

    def add_annotation(self, document_id: str, body: str, tags: list[str]) -> Annotation:
        if self.add_error is not None:
            raise self.add_error
        annotation = Annotation(
            id=f"NOTE-{len(self.annotations) + 1}",
            document_id=document_id,
            body=body,
            tags=list(tags),
        )
        self.annotations.append(annotation)
        return annotation


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


# =============================================================================
# Provider Fixtures
# =============================================================================

class StubProvider(LLMProvider):
    """
    응답/에러를 순서대로 돌려주는 Provider.

    replies 항목이 Exception이면 raise, 아니면 ChatResponse 텍스트로 사용.
    """

    display_name = "Stub"
    DEFAULT_BASE_URL = "http://stub.invalid"

    def __init__(self, config: ProviderConfig, replies: list[Any] | None = None):
        super().__init__(config)
        self.replies = list(replies or [])
        self.requests: list[ChatRequest] = []
        self.closed = False

    async def _chat_once(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else "stub analysis"
        if isinstance(reply, Exception):
            raise reply
        return ChatResponse(
            text=reply,
            model=request.model,
            finish_reason="stop",
            usage=TokenUsage(10, 20, 30),
        )

    async def _probe(self) -> None:
        return None

    def fallback_models(self) -> list[ModelInfo]:
        return [ModelInfo("stub-model", "Stub Model", 4096)]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def openai_config() -> ProviderConfig:
    return ProviderConfig(
        kind=ProviderKind.OPENAI,
        api_key="sk-test-openai",
        default_model="gpt-4",
        max_retries=0,
    )


@pytest.fixture
def template_store(tmp_path: Path) -> PromptTemplateStore:
    """기본 템플릿이 시드되는 임시 저장소."""
    return PromptTemplateStore(tmp_path / "prompts.yaml")


@pytest.fixture
def stub_provider_cls() -> type[StubProvider]:
    return StubProvider


@pytest.fixture
def library_builder():
    """library.yaml 작성 함수."""
    return write_library
