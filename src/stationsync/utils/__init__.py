"""Shared utilities for stationsync."""

from .io import clear_staging, file_name_from_url, get_data_path, get_project_root

__all__ = [
    "clear_staging",
    "file_name_from_url",
    "get_data_path",
    "get_project_root",
]
