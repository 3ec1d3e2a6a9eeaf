"""
paper-analysis: 문헌 AI 분석 파이프라인.

구성:
- providers/: LLM Provider 추상화 + 6개 백엔드, 공통 재시도 정책
- services/extract.py: 첨부 파일 → 분석용 텍스트 (fallback 체인 + 진단)
- services/analysis.py: 템플릿 + 추출 텍스트 + Gateway → AnalysisResult
- notes/, templates/, library/: 외부 협력자 (노트 저장, 템플릿, 문헌 저장소)
"""

__version__ = "0.3.0"
