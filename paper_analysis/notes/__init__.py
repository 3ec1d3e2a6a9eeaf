"""Notes: 분석 결과 노트 생성 + 내장 메타데이터."""

from .creator import NoteCreator
from .metadata import NoteMetadata, format_metadata, parse_metadata, strip_metadata

__all__ = [
    "NoteCreator",
    "NoteMetadata",
    "format_metadata",
    "parse_metadata",
    "strip_metadata",
]
