"""Shared pytest fixtures for stationsync tests.

Test Tiers:
- unit: Fast tests with fixtures, no network (default)
- integration: Tests against a real temporary DuckDB file and staging dir
- live: Real download tests, slow, requires network

Run live tests with: pytest -m live --run-live
"""

from pathlib import Path

import pytest

from stationsync.context import WorkerContext
from stationsync.store.database import TelemetryDatabase


def pytest_addoption(parser):
    """Add command line options for test configuration."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run live download tests (slow, requires network)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests using fixtures")
    config.addinivalue_line("markers", "integration: tests against a real temporary database")
    config.addinivalue_line("markers", "live: real download tests (slow, requires network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        # --run-live given: don't skip live tests
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# A Laramie file as published: preamble, header triple, three hourly rows.
# The second row has an empty SoilMoist cell.
SAMPLE_CSV = (
    '"TOA5","Laramie","CR1000","1234","CR1000.Std.32","CPU:hourly.CR1","5678","Hourly"\n'
    '"TIMESTAMP","RECORD","site","AirTemp","RH","SoilMoist"\n'
    '"TS","RN","","DegC","%","m^3/m^3"\n'
    '"","","","Avg","Smp","Avg"\n'
    '"2021-06-01 00:00:00",5,"Laramie",21.4,40,0.21\n'
    '"2021-06-01 01:00:00",6,"Laramie",20.9,43,\n'
    '"2021-06-01 02:00:00",7,"Laramie",19.8,47,0.20\n'
)

# Same layout without a preamble or a site column; resolved by file name.
NO_SITE_COLUMN_CSV = (
    '"TIMESTAMP","RECORD","AirTemp"\n'
    '"TS","RN","DegC"\n'
    '"","","Avg"\n'
    '"2021-06-01 00:00:00",1,12.5\n'
    '"2021-06-01 01:00:00",2,12.1\n'
)


@pytest.fixture
def sample_csv_text() -> str:
    """Raw text of a station file with a preamble and a site column."""
    return SAMPLE_CSV


@pytest.fixture
def no_site_csv_text() -> str:
    """Raw text of a station file without preamble or site column."""
    return NO_SITE_COLUMN_CSV


@pytest.fixture
def temp_db(tmp_path) -> TelemetryDatabase:
    """Create a temporary telemetry database for testing."""
    db = TelemetryDatabase(tmp_path / "test.duckdb")
    yield db
    db.close()


@pytest.fixture
def staging_dir(tmp_path) -> Path:
    """Temporary staging directory."""
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def worker_ctx() -> WorkerContext:
    """Context of a single test worker."""
    return WorkerContext(name="worker-1", index=0)
