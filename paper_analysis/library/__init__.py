"""Library layer: DocumentStore 계약 + 로컬 파일 구현."""

from .base import Annotation, Attachment, Creator, Document, DocumentStore, IndexState
from .local import LibraryError, LocalLibrary

__all__ = [
    "DocumentStore",
    "Document",
    "Attachment",
    "Annotation",
    "Creator",
    "IndexState",
    "LocalLibrary",
    "LibraryError",
]
