"""
test_local.py - 로컬 라이브러리 (DocumentStore 구현) 테스트

테스트 케이스:
- manifest 로드 / 에러 (없음, 손상)
- 첨부 경로 해석 (stored / linked / linked_url)
- 전문 색인 상태 + pypdf 색인
- 노트 저장 (원자적 쓰기, 락)
"""

import json
from datetime import UTC
from pathlib import Path

import pytest
from pypdf import PdfWriter

from paper_analysis.domain.errors import ErrorCodes
from paper_analysis.library.base import Attachment, IndexState
from paper_analysis.library.local import LibraryError, LocalLibrary


class TestManifest:
    """library.yaml 로드."""

    def test_documents_loaded(self, library_root):
        library = LocalLibrary(library_root)

        assert [d.id for d in library.list_documents()] == ["DOC-1", "DOC-2"]
        document = library.get_document("DOC-1")
        assert document.creators[0].full_name == "Ashish Vaswani"
        assert document.attachment_ids == ["ATT-1"]
        assert document.doi == "10.5555/3295222.3295349"

        attachment = library.get_attachment("ATT-1")
        assert attachment.parent_id == "DOC-1"
        assert attachment.content_type == "application/pdf"

    def test_unknown_ids(self, library_root):
        library = LocalLibrary(library_root)
        assert library.get_document("DOC-404") is None
        assert library.get_attachment("ATT-404") is None

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(LibraryError) as exc_info:
            LocalLibrary(tmp_path / "nowhere")
        assert exc_info.value.code == ErrorCodes.LIBRARY_NOT_FOUND

    def test_corrupt_manifest(self, tmp_path):
        (tmp_path / "library.yaml").write_text("documents: [unclosed", encoding="utf-8")

        with pytest.raises(LibraryError) as exc_info:
            LocalLibrary(tmp_path)
        assert exc_info.value.code == ErrorCodes.LIBRARY_CORRUPT

    def test_document_without_id(self, tmp_path, library_builder):
        library_builder(tmp_path, [{"title": "No id"}])

        with pytest.raises(LibraryError) as exc_info:
            LocalLibrary(tmp_path)
        assert exc_info.value.code == ErrorCodes.LIBRARY_CORRUPT


class TestFilePaths:
    """첨부 경로 해석."""

    @pytest.fixture
    def library(self, tmp_path, library_builder) -> LocalLibrary:
        library_builder(
            tmp_path / "lib",
            [
                {
                    "id": "DOC-1",
                    "attachments": [
                        {"id": "A-STORED", "content_type": "application/pdf", "link_mode": 0, "path": "storage/a.pdf"},
                        {"id": "A-LINKED-ABS", "content_type": "application/pdf", "link_mode": "linked", "path": "/mnt/papers/b.pdf"},
                        {"id": "A-LINKED-REL", "content_type": "application/pdf", "link_mode": 1, "path": "sub/c.pdf"},
                        {"id": "A-URL", "content_type": "text/html", "link_mode": 3, "path": "https://example.com"},
                        {"id": "A-NOPATH", "content_type": "application/pdf", "link_mode": "stored"},
                    ],
                }
            ],
            linked_base_dir=str(tmp_path / "nas"),
        )
        return LocalLibrary(tmp_path / "lib")

    def test_stored_relative_to_root(self, library, tmp_path):
        path = library.get_file_path(library.get_attachment("A-STORED"))
        assert path == tmp_path / "lib" / "storage" / "a.pdf"

    def test_linked_absolute(self, library):
        path = library.get_file_path(library.get_attachment("A-LINKED-ABS"))
        assert path == Path("/mnt/papers/b.pdf")

    def test_linked_relative_to_base_dir(self, library, tmp_path):
        path = library.get_file_path(library.get_attachment("A-LINKED-REL"))
        assert path == tmp_path / "nas" / "sub" / "c.pdf"

    def test_url_and_missing_path(self, library):
        assert library.get_file_path(library.get_attachment("A-URL")) is None
        assert library.get_file_path(library.get_attachment("A-NOPATH")) is None


class TestFullTextIndex:
    """.fulltext 캐시."""

    def test_cached_attachment_is_indexed(self, library_root):
        library = LocalLibrary(library_root)
        attachment = library.get_attachment("ATT-1")

        assert library.get_index_state(attachment) == IndexState.INDEXED
        assert "rely on attention" in library.read_index_cache(attachment)

    def test_missing_file_unavailable(self, library_root):
        library = LocalLibrary(library_root)
        attachment = Attachment("ATT-X", "DOC-1", "application/pdf", "stored", "storage/none.pdf")

        assert library.get_index_state(attachment) == IndexState.UNAVAILABLE
        assert library.read_index_cache(attachment) is None

    def test_blank_pdf_produces_no_cache(self, library_root):
        pdf_path = library_root / "storage" / "blank.pdf"
        writer = PdfWriter()
        writer.add_blank_page(width=612, height=792)
        with open(pdf_path, "wb") as f:
            writer.write(f)

        library = LocalLibrary(library_root)
        attachment = Attachment("ATT-B", "DOC-1", "application/pdf", "stored", "storage/blank.pdf")
        assert library.get_index_state(attachment) == IndexState.UNINDEXED

        library.index_attachment(attachment)

        assert library.read_index_cache(attachment) is None
        assert library.get_index_state(attachment) == IndexState.UNINDEXED

    def test_unparseable_pdf_logged_not_raised(self, library_root):
        (library_root / "storage" / "broken.pdf").write_bytes(b"this is not a pdf at all")
        library = LocalLibrary(library_root)
        attachment = Attachment("ATT-BR", "DOC-1", "application/pdf", "stored", "storage/broken.pdf")

        library.index_attachment(attachment)

        assert library.read_index_cache(attachment) is None


class TestAnnotations:
    """노트 저장."""

    def test_add_and_list(self, library_root):
        library = LocalLibrary(library_root)

        created = library.add_annotation("DOC-1", "# Summary\n\ntext", ["ai-analysis", "prompt:summary"])

        assert created.id.startswith("NOTE-")
        notes = library.get_annotations("DOC-1")
        assert len(notes) == 1
        assert notes[0].body == "# Summary\n\ntext"
        assert notes[0].has_tag("ai-analysis")
        assert notes[0].date_modified.tzinfo == UTC
        assert library.get_annotations("DOC-2") == []

    def test_persisted_as_json(self, library_root):
        library = LocalLibrary(library_root)
        library.add_annotation("DOC-1", "a", [])
        library.add_annotation("DOC-2", "b", [])

        data = json.loads((library_root / "annotations.json").read_text(encoding="utf-8"))

        assert [a["document_id"] for a in data["annotations"]] == ["DOC-1", "DOC-2"]
        assert not list(library_root.glob("*.tmp"))

    def test_visible_to_new_instance(self, library_root):
        LocalLibrary(library_root).add_annotation("DOC-1", "persisted", ["x"])

        notes = LocalLibrary(library_root).get_annotations("DOC-1")

        assert notes[0].body == "persisted"

    def test_unknown_document(self, library_root):
        with pytest.raises(LibraryError) as exc_info:
            LocalLibrary(library_root).add_annotation("DOC-404", "x", [])
        assert exc_info.value.code == ErrorCodes.DOCUMENT_NOT_FOUND
