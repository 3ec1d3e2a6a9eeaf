"""
test_storage.py - 원자적 JSON 쓰기 테스트
"""

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from paper_analysis.core.storage import atomic_write_json, read_json

# =============================================================================
# atomic_write_json 테스트
# =============================================================================


class TestAtomicWriteJson:
    """atomic_write_json 함수 테스트."""

    def test_writes_json_correctly(self, tmp_path: Path):
        """JSON 파일 정상 작성 (비ASCII 유지)."""
        file_path = tmp_path / "annotations.json"
        data = {"annotations": [{"body": "注释", "tags": ["ai-analysis"]}]}

        atomic_write_json(file_path, data)

        assert json.loads(file_path.read_text(encoding="utf-8")) == data
        assert "注释" in file_path.read_text(encoding="utf-8")

    def test_creates_parent_directories(self, tmp_path: Path):
        file_path = tmp_path / "nested" / "dir" / "test.json"

        atomic_write_json(file_path, {"key": "value"})

        assert file_path.exists()

    def test_no_temp_file_left_on_success(self, tmp_path: Path):
        atomic_write_json(tmp_path / "test.json", {"key": "value"})

        assert list(tmp_path.glob("*.tmp")) == []

    def test_preserves_original_on_failure(self, tmp_path: Path):
        """직렬화 실패 시 원본 유지 + temp 정리."""
        file_path = tmp_path / "test.json"
        file_path.write_text(json.dumps({"original": "data"}))

        class NonSerializable:
            pass

        with pytest.raises(TypeError):
            atomic_write_json(file_path, {"bad": NonSerializable()})

        assert json.loads(file_path.read_text()) == {"original": "data"}
        assert list(tmp_path.glob("*.tmp")) == []


class TestAtomicWriteFsyncFailure:
    """fsync 실패 시 warning 로그."""

    def test_fsync_failure_logs_warning_and_writes(self, tmp_path: Path, caplog):
        file_path = tmp_path / "important.json"
        caplog.set_level(logging.WARNING, logger="paper_analysis.core.storage")

        with patch("os.fsync") as mock_fsync:
            mock_fsync.side_effect = OSError("I/O error")
            atomic_write_json(file_path, {"key": "value"})

        assert json.loads(file_path.read_text(encoding="utf-8")) == {"key": "value"}
        warnings = [r.message for r in caplog.records if r.levelname == "WARNING"]
        assert any("fsync failed" in m and str(file_path) in m for m in warnings)


class TestReadJson:

    def test_missing_returns_default(self, tmp_path: Path):
        assert read_json(tmp_path / "none.json", default={"annotations": []}) == {"annotations": []}

    def test_reads_existing(self, tmp_path: Path):
        path = tmp_path / "x.json"
        path.write_text('{"a": 1}', encoding="utf-8")
        assert read_json(path) == {"a": 1}
