"""
ID 생성: 노트 ID, 템플릿 ID.

기본 템플릿 ID는 고정값 (templates.manager.DEFAULT_TEMPLATES), 여기서 발급하지 않음.
"""

import uuid
from datetime import UTC, datetime


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y%m%d%H%M%S")


def generate_annotation_id() -> str:
    """
    노트 ID 생성.

    포맷: NOTE-{timestamp}-{uuid[:8]}
    """
    return f"NOTE-{_timestamp()}-{uuid.uuid4().hex[:8]}"


def generate_template_id() -> str:
    """
    사용자 템플릿 ID 생성.

    포맷: prompt_{timestamp}_{uuid[:8]}
    """
    return f"prompt_{_timestamp()}_{uuid.uuid4().hex[:8]}"
