"""
Core layer: 설정, ID, 파일 저장.
"""

from .config import AnalysisSettings, Settings, load_settings
from .ids import generate_annotation_id, generate_template_id
from .storage import atomic_write_json

__all__ = [
    # config
    "Settings",
    "AnalysisSettings",
    "load_settings",
    # ids
    "generate_annotation_id",
    "generate_template_id",
    # storage
    "atomic_write_json",
]
