"""Download a site's hourly data file into the staging directory."""

import logging
from pathlib import Path
from typing import Optional

import requests

from stationsync.config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT
from stationsync.context import WorkerContext, log_prefix
from stationsync.exceptions import FetchError
from stationsync.utils.io import file_name_from_url

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class Downloader:
    """Streams remote station files into a shared staging directory.

    Every network call is bounded by a (connect, read) timeout; a timeout is
    reported as FetchError like any other network failure. There is no
    retry within a run.

    Example:
        >>> downloader = Downloader(Path("data/staging"))
        >>> downloader.fetch("https://example.org/hourly/Laramie.csv")
        PosixPath('data/staging/Laramie.csv')
    """

    def __init__(
        self,
        staging_dir: Path,
        timeout: tuple[float, float] = (DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT),
        session: requests.Session | None = None,
    ):
        """Initialize the downloader.

        Args:
            staging_dir: Directory files are written to
            timeout: (connect, read) timeout in seconds
            session: Optional requests session (connection reuse)
        """
        self.staging_dir = Path(staging_dir)
        self.timeout = timeout
        self.session = session

    def staging_path(self, url: str, site_id: Optional[int] = None) -> Path:
        """Local path a URL is staged at.

        With a site id the file name is prefixed by it, so two sites whose
        URLs share a base name never write to the same staged file.
        """
        name = file_name_from_url(url)
        if site_id is not None:
            name = f"{site_id}_{name}"
        return self.staging_dir / name

    def fetch(
        self,
        url: str,
        site_id: Optional[int] = None,
        ctx: Optional[WorkerContext] = None,
    ) -> Path:
        """Stream a remote file to staging.

        Args:
            url: Download URL
            site_id: Site the file belongs to (namespaces the staged file)
            ctx: Calling worker

        Returns:
            Path to the staged file

        Raises:
            FetchError: On network errors, timeouts, HTTP errors or local
                write failures
        """
        destination = self.staging_path(url, site_id)
        get = self.session.get if self.session is not None else requests.get

        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            response = get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()

            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        except requests.Timeout as e:
            raise FetchError(f"Timed out downloading file: {e}", url=url) from e
        except requests.RequestException as e:
            raise FetchError(f"Failed to download file: {e}", url=url) from e
        except OSError as e:
            raise FetchError(f"Failed to write staged file {destination}: {e}", url=url) from e

        logger.debug(f"{log_prefix(ctx)}Downloaded {url} -> {destination}")
        return destination
