"""I/O utilities for data paths and the download staging area."""

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

# Project root is 4 levels up from this file
_PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


def get_data_path(stage: str = "staging") -> Path:
    """Get standardized data path.

    Args:
        stage: One of 'staging', 'db'

    Returns:
        Path to the data directory (creates if doesn't exist)

    Example:
        >>> path = get_data_path("staging")
        >>> path
        PosixPath('.../stationsync/data/staging')
    """
    valid_stages = {"staging", "db"}
    if stage not in valid_stages:
        raise ValueError(f"Invalid stage: {stage}. Must be one of {valid_stages}")

    path = _PROJECT_ROOT / "data" / stage
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_project_root() -> Path:
    """Get the project root directory."""
    return _PROJECT_ROOT


def clear_staging(staging_dir: Path) -> Path:
    """Empty the staging directory at the start of a run.

    The staging area is shared by every worker of a run and is not
    namespaced per run, so only one sync process may use it at a time.

    Args:
        staging_dir: Staging directory to reset

    Returns:
        The (now empty, existing) staging directory
    """
    if staging_dir.exists():
        try:
            shutil.rmtree(staging_dir)
        except OSError as e:
            # Leftover files are overwritten by the next download anyway
            logger.warning(f"Could not clear staging directory {staging_dir}: {e}")
    staging_dir.mkdir(parents=True, exist_ok=True)
    return staging_dir


def file_name_from_url(url: str) -> str:
    """Return the last path segment of a download URL.

    Example:
        >>> file_name_from_url("https://example.org/data/Laramie.csv")
        'Laramie.csv'
    """
    name = url.rstrip("/").split("/")[-1]
    # Drop query strings so the staged file keeps its extension
    return name.split("?")[0]
