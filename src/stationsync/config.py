"""Runtime configuration for the station sync job.

Values come from the environment (a local ``.env`` file is loaded first)
and can be overridden by CLI flags.

Environment variables:
    STATIONSYNC_DB_PATH: DuckDB file holding sites and datapoints
    STATIONSYNC_STAGING_DIR: Directory downloads are staged in
    STATIONSYNC_WORKERS: Number of concurrent workers (default 3)
    STATIONSYNC_CLAIM_STRATEGY: 'claim' or 'shard' (default 'claim')
    STATIONSYNC_WATERMARK_POLICY: 'run_time' or 'max_inserted_timestamp'
    STATIONSYNC_CONNECT_TIMEOUT: Connect timeout in seconds (default 10)
    STATIONSYNC_READ_TIMEOUT: Read timeout in seconds (default 60)
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from stationsync.exceptions import ConfigurationError
from stationsync.store.database import DEFAULT_DB_PATH
from stationsync.utils.io import get_data_path

DEFAULT_WORKERS = 3
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 60.0


class ClaimStrategy(str, Enum):
    """How sites are distributed across workers."""

    CLAIM = "claim"  # shared list, atomic per-site claim
    SHARD = "shard"  # disjoint shards assigned up front


class WatermarkPolicy(str, Enum):
    """What a site's last-updated watermark is set to after an import."""

    RUN_TIME = "run_time"
    MAX_INSERTED_TIMESTAMP = "max_inserted_timestamp"


def _default_db_path() -> Path:
    return DEFAULT_DB_PATH


def _default_staging_dir() -> Path:
    return get_data_path("staging")


def _parse_enum(enum_cls, value: str, env_key: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(
            f"Invalid value for {env_key}: '{value}'. Must be one of: {choices}",
            {"env_key": env_key},
        ) from None


def _parse_number(value: str, env_key: str, cast=float):
    try:
        return cast(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid numeric value for {env_key}: '{value}'",
            {"env_key": env_key},
        ) from None


@dataclass
class SyncConfig:
    """Configuration for one sync run.

    Attributes:
        db_path: DuckDB database file
        staging_dir: Download staging directory (cleared at run start)
        workers: Number of concurrent workers
        claim_strategy: Site distribution strategy
        watermark_policy: Watermark written after each site import
        connect_timeout: Seconds to wait for a connection
        read_timeout: Seconds to wait between bytes of a download
    """

    db_path: Path = field(default_factory=_default_db_path)
    staging_dir: Path = field(default_factory=_default_staging_dir)
    workers: int = DEFAULT_WORKERS
    claim_strategy: ClaimStrategy = ClaimStrategy.CLAIM
    watermark_policy: WatermarkPolicy = WatermarkPolicy.RUN_TIME
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        self.staging_dir = Path(self.staging_dir)
        if isinstance(self.claim_strategy, str) and not isinstance(self.claim_strategy, ClaimStrategy):
            self.claim_strategy = _parse_enum(ClaimStrategy, self.claim_strategy, "claim_strategy")
        if isinstance(self.watermark_policy, str) and not isinstance(self.watermark_policy, WatermarkPolicy):
            self.watermark_policy = _parse_enum(WatermarkPolicy, self.watermark_policy, "watermark_policy")
        if self.workers < 1:
            raise ConfigurationError(
                f"Worker count must be at least 1, got {self.workers}",
                {"workers": self.workers},
            )
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigurationError("Network timeouts must be positive")

    @property
    def timeout(self) -> tuple[float, float]:
        """(connect, read) timeout pair as accepted by requests."""
        return (self.connect_timeout, self.read_timeout)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "SyncConfig":
        """Load configuration from environment variables.

        Args:
            env_file: Optional .env file to load. Defaults to searching the
                working directory.

        Returns:
            SyncConfig instance

        Raises:
            ConfigurationError: When a variable has an invalid value
        """
        load_dotenv(env_file)

        kwargs = {}

        db_path = os.getenv("STATIONSYNC_DB_PATH")
        if db_path:
            kwargs["db_path"] = Path(db_path)

        staging_dir = os.getenv("STATIONSYNC_STAGING_DIR")
        if staging_dir:
            kwargs["staging_dir"] = Path(staging_dir)

        workers = os.getenv("STATIONSYNC_WORKERS")
        if workers:
            kwargs["workers"] = _parse_number(workers, "STATIONSYNC_WORKERS", int)

        strategy = os.getenv("STATIONSYNC_CLAIM_STRATEGY")
        if strategy:
            kwargs["claim_strategy"] = _parse_enum(
                ClaimStrategy, strategy, "STATIONSYNC_CLAIM_STRATEGY"
            )

        policy = os.getenv("STATIONSYNC_WATERMARK_POLICY")
        if policy:
            kwargs["watermark_policy"] = _parse_enum(
                WatermarkPolicy, policy, "STATIONSYNC_WATERMARK_POLICY"
            )

        connect_timeout = os.getenv("STATIONSYNC_CONNECT_TIMEOUT")
        if connect_timeout:
            kwargs["connect_timeout"] = _parse_number(
                connect_timeout, "STATIONSYNC_CONNECT_TIMEOUT"
            )

        read_timeout = os.getenv("STATIONSYNC_READ_TIMEOUT")
        if read_timeout:
            kwargs["read_timeout"] = _parse_number(read_timeout, "STATIONSYNC_READ_TIMEOUT")

        return cls(**kwargs)
