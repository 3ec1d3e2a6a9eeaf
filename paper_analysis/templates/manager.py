"""
프롬프트 템플릿 저장소: YAML 파일 CRUD.

규칙:
- 첫 사용 시 기본 템플릿 6개 생성 (고정 ID)
- 기본 템플릿: 내용 변경 불가, 삭제 불가 (이름/설명/분류는 변경 가능)
- import된 템플릿은 항상 사용자 템플릿 (is_default=False)
- 읽기-수정-쓰기 전체를 파일 락으로 보호
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock, Timeout

from paper_analysis.core.ids import generate_template_id
from paper_analysis.domain.errors import ErrorCodes

logger = logging.getLogger(__name__)

# =============================================================================
# Exceptions
# =============================================================================

class TemplateError(Exception):
    """템플릿 관련 에러."""

    def __init__(self, code: str, message: str, **context: Any) -> None:
        self.code = code
        self.message = message
        self.context = context
        super().__init__(f"[{code}] {message}")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class PromptTemplate:
    """분석 프롬프트 템플릿."""
    id: str
    name: str
    content: str
    is_default: bool = False
    created_at: str = ""
    updated_at: str = ""
    description: str | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "is_default": self.is_default,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "description": self.description,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptTemplate":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            content=str(data["content"]),
            is_default=bool(data.get("is_default", False)),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
            description=data.get("description"),
            category=data.get("category"),
        )


BASIC_CATEGORY = "Basic Analysis"
DEEP_CATEGORY = "In-depth Analysis"

# (id, name, description, category, content)
DEFAULT_TEMPLATES = [
    (
        "summary",
        "Paper Summary",
        "Summarize the core content of the paper",
        BASIC_CATEGORY,
        "Summarize the core content of this paper, covering:\n"
        "1. Research problem / background\n"
        "2. Methodology\n"
        "3. Main findings\n"
        "4. Contributions\n\n"
        "Keep it within 300-500 words and use academic language.",
    ),
    (
        "methodology",
        "Research Methods",
        "Analyze the research methodology",
        BASIC_CATEGORY,
        "Analyze the research methods used in this paper in detail, including:\n"
        "1. Research design (experiment / observation / survey, etc.)\n"
        "2. Data sources and collection\n"
        "3. Analysis techniques and tools\n"
        "4. Methodological novelty\n\n"
        "Present the answer in a structured way.",
    ),
    (
        "contributions",
        "Innovations and Contributions",
        "Identify the paper's innovations",
        BASIC_CATEGORY,
        "Extract the main innovations and academic contributions of this paper:\n"
        "1. Theoretical innovation\n"
        "2. Methodological innovation\n"
        "3. Practical value\n"
        "4. Differences from existing research\n\n"
        "Point out clearly what makes it unique and important.",
    ),
    (
        "limitations",
        "Limitations and Outlook",
        "Assess the limitations of the study",
        BASIC_CATEGORY,
        "Analyze the limitations of this paper and future research directions:\n"
        "1. Limitations (method, data, theory, etc.)\n"
        "2. Possible improvements\n"
        "3. Suggested follow-up research questions\n"
        "4. Implications for practice\n\n"
        "Be objective and neutral.",
    ),
    (
        "literature_review",
        "Literature Review",
        "Summarize the literature review",
        DEEP_CATEGORY,
        "Based on this paper, summarize its literature review:\n"
        "1. Main theoretical frameworks cited\n"
        "2. Key prior studies\n"
        "3. Identified research gaps\n"
        "4. Positioning of this study\n\n"
        "This should help place the work within its research lineage.",
    ),
    (
        "research_questions",
        "Research Questions and Hypotheses",
        "Identify the research questions",
        DEEP_CATEGORY,
        "Extract the core research questions and hypotheses of this paper:\n"
        "1. Main research questions\n"
        "2. Hypotheses (if any)\n"
        "3. Theoretical basis\n"
        "4. Why the questions matter\n\n"
        "State them in clear language.",
    ),
]


def default_templates() -> list[PromptTemplate]:
    now = datetime.now(UTC).isoformat()
    return [
        PromptTemplate(
            id=template_id,
            name=name,
            content=content,
            is_default=True,
            created_at=now,
            updated_at=now,
            description=description,
            category=category,
        )
        for template_id, name, description, category, content in DEFAULT_TEMPLATES
    ]


# =============================================================================
# Template Store
# =============================================================================

class PromptTemplateStore:
    """
    프롬프트 템플릿 CRUD.

    구조:
        prompts.yaml
        prompts.yaml.lock

    Usage:
        store = PromptTemplateStore(Path("prompts.yaml"))
        template = store.get("summary")
    """

    LOCK_TIMEOUT = 10.0

    def __init__(self, path: Path):
        """
        Args:
            path: 템플릿 YAML 파일 경로 (없으면 첫 사용 시 기본 템플릿으로 생성)
        """
        self.path = Path(path)
        self._lock_path = self.path.with_name(f"{self.path.name}.lock")

    @contextmanager
    def _store_lock(self) -> Generator[None, None, None]:
        """
        저장소 파일 락.

        Raises:
            TemplateError: TEMPLATE_LOCK_TIMEOUT
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self._lock_path, timeout=self.LOCK_TIMEOUT)

        try:
            lock.acquire()
            yield
        except Timeout:
            raise TemplateError(
                ErrorCodes.TEMPLATE_LOCK_TIMEOUT,
                f"Failed to acquire lock for {self.path}",
                timeout=self.LOCK_TIMEOUT,
            )
        finally:
            lock.release()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self) -> list[PromptTemplate]:
        """파일 로드. 없으면 기본 템플릿 생성 후 저장 (락 안에서 호출)."""
        if not self.path.exists():
            templates = default_templates()
            self._save(templates)
            logger.info(f"Seeded {len(templates)} default templates at {self.path}")
            return templates

        with open(self.path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        try:
            return [PromptTemplate.from_dict(raw) for raw in data.get("templates", [])]
        except (KeyError, TypeError, AttributeError) as e:
            raise TemplateError(
                ErrorCodes.INVALID_TEMPLATE,
                f"Template file is malformed: {self.path}",
                path=str(self.path),
            ) from e

    def _save(self, templates: list[PromptTemplate]) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {"templates": [t.to_dict() for t in templates]},
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )

    # =========================================================================
    # Read
    # =========================================================================

    def list_templates(self) -> list[PromptTemplate]:
        with self._store_lock():
            return self._load()

    def get(self, template_id: str) -> PromptTemplate | None:
        for template in self.list_templates():
            if template.id == template_id:
                return template
        return None

    def list_by_category(self, category: str) -> list[PromptTemplate]:
        return [t for t in self.list_templates() if t.category == category]

    def categories(self) -> list[str]:
        seen: dict[str, None] = {}
        for template in self.list_templates():
            if template.category:
                seen.setdefault(template.category, None)
        return list(seen)

    def search(self, query: str) -> list[PromptTemplate]:
        needle = query.lower()
        return [
            t for t in self.list_templates()
            if needle in t.name.lower()
            or needle in t.content.lower()
            or needle in (t.description or "").lower()
        ]

    # =========================================================================
    # Write
    # =========================================================================

    def create(
        self,
        name: str,
        content: str,
        description: str | None = None,
        category: str | None = None,
    ) -> PromptTemplate:
        """
        사용자 템플릿 생성.

        Raises:
            TemplateError: INVALID_TEMPLATE
        """
        _require_fields(name, content)
        now = datetime.now(UTC).isoformat()
        template = PromptTemplate(
            id=generate_template_id(),
            name=name,
            content=content,
            is_default=False,
            created_at=now,
            updated_at=now,
            description=description,
            category=category,
        )

        with self._store_lock():
            templates = self._load()
            templates.append(template)
            self._save(templates)

        return template

    def update(
        self,
        template_id: str,
        name: str | None = None,
        content: str | None = None,
        description: str | None = None,
        category: str | None = None,
    ) -> PromptTemplate:
        """
        템플릿 수정 (None 인자는 유지).

        Raises:
            TemplateError: TEMPLATE_NOT_FOUND, DEFAULT_TEMPLATE_IMMUTABLE, INVALID_TEMPLATE
        """
        with self._store_lock():
            templates = self._load()
            index = _find_index(templates, template_id)
            current = templates[index]

            if current.is_default and content is not None and content != current.content:
                raise TemplateError(
                    ErrorCodes.DEFAULT_TEMPLATE_IMMUTABLE,
                    "Cannot modify content of default templates",
                    template_id=template_id,
                )

            updated = replace(
                current,
                name=name if name is not None else current.name,
                content=content if content is not None else current.content,
                description=description if description is not None else current.description,
                category=category if category is not None else current.category,
                updated_at=datetime.now(UTC).isoformat(),
            )
            _require_fields(updated.name, updated.content)

            templates[index] = updated
            self._save(templates)

        return updated

    def delete(self, template_id: str) -> None:
        """
        Raises:
            TemplateError: TEMPLATE_NOT_FOUND, DEFAULT_TEMPLATE_IMMUTABLE
        """
        with self._store_lock():
            templates = self._load()
            index = _find_index(templates, template_id)

            if templates[index].is_default:
                raise TemplateError(
                    ErrorCodes.DEFAULT_TEMPLATE_IMMUTABLE,
                    "Cannot delete default templates",
                    template_id=template_id,
                )

            del templates[index]
            self._save(templates)

    def duplicate(self, template_id: str) -> PromptTemplate:
        """복사본은 항상 사용자 템플릿."""
        with self._store_lock():
            templates = self._load()
            original = templates[_find_index(templates, template_id)]
            now = datetime.now(UTC).isoformat()
            copied = replace(
                original,
                id=generate_template_id(),
                name=f"{original.name} (copy)",
                is_default=False,
                created_at=now,
                updated_at=now,
            )
            templates.append(copied)
            self._save(templates)

        return copied

    def reset_to_defaults(self) -> list[PromptTemplate]:
        """사용자 템플릿 포함 전체를 기본 템플릿으로 교체."""
        templates = default_templates()
        with self._store_lock():
            self._save(templates)
        return templates

    # =========================================================================
    # Import / Export
    # =========================================================================

    def export_templates(self) -> str:
        return yaml.safe_dump(
            [t.to_dict() for t in self.list_templates()],
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )

    def import_templates(self, text: str, replace_all: bool = False) -> list[PromptTemplate]:
        """
        YAML(또는 JSON) 목록 import.

        - name, content 필수
        - 모두 is_default=False로 저장
        - 기존 ID와 겹치면 새 ID 발급

        Raises:
            TemplateError: INVALID_TEMPLATE
        """
        try:
            raw_items = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise TemplateError(
                ErrorCodes.INVALID_TEMPLATE,
                "Invalid format: could not parse template list",
            ) from e

        if not isinstance(raw_items, list):
            raise TemplateError(
                ErrorCodes.INVALID_TEMPLATE,
                "Invalid format: expected a list of templates",
            )
        for item in raw_items:
            if not isinstance(item, dict) or not item.get("name") or not item.get("content"):
                raise TemplateError(
                    ErrorCodes.INVALID_TEMPLATE,
                    "Invalid format: every template needs name and content",
                )

        with self._store_lock():
            templates = [] if replace_all else self._load()
            taken = {t.id for t in templates}
            now = datetime.now(UTC).isoformat()
            imported = []

            for item in raw_items:
                template_id = str(item.get("id") or "")
                if not template_id or template_id in taken:
                    template_id = generate_template_id()
                taken.add(template_id)
                imported.append(
                    PromptTemplate(
                        id=template_id,
                        name=str(item["name"]),
                        content=str(item["content"]),
                        is_default=False,
                        created_at=str(item.get("created_at") or now),
                        updated_at=str(item.get("updated_at") or now),
                        description=item.get("description"),
                        category=item.get("category"),
                    )
                )

            templates.extend(imported)
            self._save(templates)

        logger.info(f"Imported {len(imported)} templates")
        return imported


def _find_index(templates: list[PromptTemplate], template_id: str) -> int:
    for index, template in enumerate(templates):
        if template.id == template_id:
            return index
    raise TemplateError(
        ErrorCodes.TEMPLATE_NOT_FOUND,
        f"Template not found: {template_id}",
        template_id=template_id,
    )


def _require_fields(name: str, content: str) -> None:
    if not name or not content:
        raise TemplateError(
            ErrorCodes.INVALID_TEMPLATE,
            "Template name and content are required",
        )
