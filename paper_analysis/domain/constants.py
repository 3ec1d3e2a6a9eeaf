"""
Domain Constants: 파이프라인 전역 상수.

추출 예산, 요청 간격, 비용 추정 오버헤드, 노트 태그 규칙.
"""

# =============================================================================
# Extraction (본문 추출)
# =============================================================================

# 분석용 본문 최대 길이 (문자 수). 초과분은 잘라내고 마커를 붙임.
MAX_FULLTEXT_CHARS = 50_000
TRUNCATION_MARKER = "\n...(content truncated)"

PDF_CONTENT_TYPE = "application/pdf"

# OneDrive / Google Drive 온디맨드 스텁은 보통 1KB 미만
CLOUD_PLACEHOLDER_MAX_BYTES = 1024

# =============================================================================
# Analysis (분석 실행)
# =============================================================================

# 배치 항목 사이 대기 (초). 마지막 항목 뒤에는 대기하지 않음.
REQUEST_DELAY_SECONDS = 1.0

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 4000

# 비용 추정: 문서당 system prompt + 응답 여유분
COST_OVERHEAD_TOKENS = 500

# 이 값을 넘으면 경고 로그만 남김 (요청은 그대로 진행)
LARGE_PROMPT_TOKENS = 30_000

SYSTEM_PROMPT = (
    "You are a professional academic paper analysis assistant. "
    "Analyze the paper strictly according to the user's instructions "
    "and provide accurate, objective results."
)

# =============================================================================
# Notes (노트 태그 / 메타데이터)
# =============================================================================
# 노트 태그:
# - ai-analysis           : AI 생성 노트 표시
# - prompt:<template_id>  : 사용한 템플릿
# - provider:<kind>       : 사용한 백엔드

AI_ANALYSIS_TAG = "ai-analysis"
PROMPT_TAG_PREFIX = "prompt:"
PROVIDER_TAG_PREFIX = "provider:"

METADATA_MARKER = "paper-analysis"
LEGACY_METADATA_MARKER = "AIPaperAnalysis"
METADATA_SCHEMA_VERSION = 1
