"""Match a parsed station file to a site in the catalog."""

import logging
from pathlib import Path
from typing import Optional, Protocol, Sequence

from stationsync.context import WorkerContext, log_prefix
from stationsync.exceptions import UnknownSiteError
from stationsync.store.models import Site

logger = logging.getLogger(__name__)

SITE_IDENTIFIER = "site"


class SiteLookup(Protocol):
    """The part of the site catalog the resolver needs."""

    def find_site_by_name(self, name: str) -> Optional[Site]:
        ...


def site_name_from_row(identifiers: Sequence[str], row: Optional[Sequence[str]]) -> Optional[str]:
    """Value of the ``site`` column in ``row``, or None if absent/empty."""
    if row is None:
        return None
    for index, identifier in enumerate(identifiers):
        if identifier == SITE_IDENTIFIER:
            value = row[index].strip() if index < len(row) else ""
            return value or None
    return None


def site_name_from_path(file_path: Path) -> str:
    """Site name derived from a file's base name.

    Example:
        >>> site_name_from_path(Path("/tmp/staging/Laramie.csv"))
        'Laramie'
    """
    return Path(file_path).stem


class SiteResolver:
    """Resolve which catalog site a file belongs to.

    Files that carry a ``site`` column are matched by its value; others by
    their file name without extension.

    Example:
        >>> resolver = SiteResolver(db)
        >>> resolver.resolve(header.identifiers, rows[0], Path("Laramie.csv"))
        Site(site_id=1, site_name='Laramie', ...)
    """

    def __init__(self, catalog: SiteLookup):
        self.catalog = catalog

    def resolve(
        self,
        identifiers: Sequence[str],
        sample_row: Optional[Sequence[str]],
        file_path: Path,
        source_name: Optional[str] = None,
        ctx: Optional[WorkerContext] = None,
    ) -> Site:
        """Find the site for a file.

        Args:
            identifiers: Header identifiers of the file
            sample_row: A data row to read the ``site`` column from
            file_path: Path of the staged file
            source_name: Original file name (URL base name) when the staged
                file was renamed; used instead of ``file_path`` as the
                fallback name source
            ctx: Calling worker

        Returns:
            The matching Site

        Raises:
            UnknownSiteError: If no catalog site has the derived name
        """
        name = site_name_from_row(identifiers, sample_row)
        if name is None:
            name = site_name_from_path(Path(source_name) if source_name else file_path)
            logger.debug(
                f"{log_prefix(ctx)}No site column in {Path(file_path).name}, "
                f"using file name '{name}'"
            )

        site = self.catalog.find_site_by_name(name)
        if site is None:
            raise UnknownSiteError(name, context={"path": str(file_path)})
        return site
