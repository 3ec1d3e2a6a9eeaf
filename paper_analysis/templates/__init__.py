"""
Templates layer: 프롬프트 템플릿 저장소.

기본 템플릿은 내용 변경/삭제 불가.
"""

from .manager import PromptTemplate, PromptTemplateStore, TemplateError

__all__ = [
    "PromptTemplate",
    "PromptTemplateStore",
    "TemplateError",
]
