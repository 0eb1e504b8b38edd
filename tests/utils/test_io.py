"""Tests for I/O utilities."""

import pytest
from pathlib import Path
from stationsync.utils.io import clear_staging, file_name_from_url, get_data_path, get_project_root


class TestGetDataPath:
    """Tests for get_data_path function."""

    def test_all_stages(self):
        """Should work for all valid stages."""
        for stage in ["staging", "db"]:
            path = get_data_path(stage)
            assert path.name == stage
            assert path.parent.name == "data"
            assert path.exists()

    def test_invalid_stage(self):
        """Should raise ValueError for invalid stage."""
        with pytest.raises(ValueError, match="Invalid stage"):
            get_data_path("raw")

    def test_default_stage(self):
        """Should use 'staging' as default stage."""
        assert get_data_path().name == "staging"


class TestGetProjectRoot:
    """Tests for get_project_root function."""

    def test_returns_path(self):
        """Should return a Path object."""
        assert isinstance(get_project_root(), Path)


class TestClearStaging:
    """Tests for clear_staging function."""

    def test_removes_leftovers(self, tmp_path):
        staging = tmp_path / "staging"
        (staging / "sub").mkdir(parents=True)
        (staging / "old.csv").write_text("x")
        (staging / "sub" / "older.csv").write_text("y")

        result = clear_staging(staging)

        assert result == staging
        assert staging.exists()
        assert list(staging.iterdir()) == []

    def test_creates_missing_dir(self, tmp_path):
        staging = tmp_path / "new" / "staging"
        clear_staging(staging)
        assert staging.is_dir()


class TestFileNameFromUrl:
    """Tests for file_name_from_url function."""

    def test_last_segment(self):
        assert file_name_from_url("https://example.org/data/Laramie.csv") == "Laramie.csv"

    def test_query_string_dropped(self):
        assert file_name_from_url("https://example.org/Laramie.csv?token=abc") == "Laramie.csv"

    def test_trailing_slash(self):
        assert file_name_from_url("https://example.org/files/Laramie/") == "Laramie"
