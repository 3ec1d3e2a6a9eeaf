"""
파일 저장 유틸: 원자적 JSON 쓰기.

노트 저장소(annotations.json) 등 중간 상태가 보이면 안 되는 파일용.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _fsync_dir(dir_path: Path) -> None:
    """디렉토리 fsync (가능한 환경에서만)."""
    try:
        dir_fd = os.open(str(dir_path), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError) as e:
        # O_DIRECTORY 미지원 (Windows 등)
        logger.debug(f"Directory fsync skipped for {dir_path}: {e}")


def atomic_write_json(path: Path, data: Any) -> None:
    """
    원자적 JSON 쓰기.

    동작:
    - temp → rename (중간 상태 없음)
    - 파일 fsync 실패 시 경고만 남기고 진행
    - 실패 시 temp 파일 삭제, 기존 파일 보존

    Args:
        path: 저장할 파일 경로
        data: JSON 직렬화할 데이터
    """
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=dir_path,
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            temp_path = Path(f.name)
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError as e:
                logger.warning(
                    f"File fsync failed for {path}: {e}. "
                    f"Data may not be durable on power loss."
                )

        os.replace(temp_path, path)
        _fsync_dir(dir_path)

    except Exception:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.warning(f"Failed to remove temp file {temp_path}")
        raise


def read_json(path: Path, default: Any = None) -> Any:
    """JSON 읽기. 파일이 없으면 default."""
    if not path.exists():
        return default
    with open(path, encoding="utf-8") as f:
        return json.load(f)
