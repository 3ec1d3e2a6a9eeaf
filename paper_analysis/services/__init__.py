"""
Application Services.

역할:
- extract: 문서 → 분석용 텍스트 + 진단 리포트
- analysis: 단건/배치 분석, 비용 추정, 이력 재구성
"""

from .analysis import AnalysisEngine
from .extract import TextExtractor

__all__ = [
    "AnalysisEngine",
    "TextExtractor",
]
