"""Distribute sites across concurrent import workers.

Two strategies are supported:

- ``claim``: every worker walks the same ordered site list and takes a site
  only if it wins an atomic claim on it. A site is claimed at most once per
  run no matter how the workers interleave.
- ``shard``: the site list is split into disjoint round-robin shards before
  any work starts; each worker only sees its own shard.

Sites of one worker are processed one after another; rows of one site are
never split across workers.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from stationsync.config import ClaimStrategy
from stationsync.context import WorkerContext
from stationsync.exceptions import StationSyncError
from stationsync.store.models import Site

logger = logging.getLogger(__name__)


class ClaimState(str, Enum):
    """Per-run lifecycle of a site."""

    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


class ClaimBoard:
    """Claim flags for one run, with an atomic check-and-set.

    Example:
        >>> board = ClaimBoard([1, 2])
        >>> board.try_claim(1)
        True
        >>> board.try_claim(1)
        False
    """

    def __init__(self, site_ids: Sequence[int]):
        self._lock = threading.Lock()
        self._states = {site_id: ClaimState.UNCLAIMED for site_id in site_ids}
        self._owners: dict[int, str] = {}

    def try_claim(self, site_id: int, owner: str = "") -> bool:
        """Claim a site if it is still unclaimed. Returns True on success."""
        with self._lock:
            if self._states.get(site_id) != ClaimState.UNCLAIMED:
                return False
            self._states[site_id] = ClaimState.CLAIMED
            self._owners[site_id] = owner
            return True

    def finish(self, site_id: int, state: ClaimState) -> None:
        """Move a claimed site to a terminal state."""
        if state not in (ClaimState.DOWNLOADED, ClaimState.FAILED):
            raise ValueError(f"Not a terminal state: {state}")
        with self._lock:
            if self._states.get(site_id) != ClaimState.CLAIMED:
                raise ValueError(f"Site {site_id} is not claimed")
            self._states[site_id] = state

    def state(self, site_id: int) -> ClaimState:
        with self._lock:
            return self._states[site_id]

    def owner(self, site_id: int) -> Optional[str]:
        with self._lock:
            return self._owners.get(site_id)

    def counts(self) -> dict[ClaimState, int]:
        """Number of sites in each state."""
        with self._lock:
            counts = {state: 0 for state in ClaimState}
            for state in self._states.values():
                counts[state] += 1
            return counts


def partition_sites(sites: Sequence[Site], workers: int) -> list[list[Site]]:
    """Split sites into ``workers`` disjoint round-robin shards.

    Example:
        >>> partition_sites(["a", "b", "c", "d", "e"], 2)
        [['a', 'c', 'e'], ['b', 'd']]
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    return [list(sites[i::workers]) for i in range(workers)]


@dataclass
class WorkerReport:
    """What one worker did during a run."""

    name: str
    processed: list[int] = field(default_factory=list)
    results: list = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if getattr(r, "status", None) == ClaimState.FAILED.value)


# (site, worker context) -> per-site result with a ``status`` attribute
ProcessSite = Callable[[Site, WorkerContext], object]


class WorkerPool:
    """Run site imports on W concurrent workers.

    Example:
        >>> pool = WorkerPool(importer.import_site, workers=3)
        >>> reports = pool.run(db.list_sites())
    """

    def __init__(
        self,
        process_site: ProcessSite,
        workers: int = 3,
        strategy: ClaimStrategy = ClaimStrategy.CLAIM,
    ):
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.process_site = process_site
        self.workers = workers
        self.strategy = ClaimStrategy(strategy)
        self._cancel_event = threading.Event()
        self.board: Optional[ClaimBoard] = None

    def cancel(self) -> None:
        """Stop workers before they pick up their next site."""
        self._cancel_event.set()

    def _process(self, site: Site, ctx: WorkerContext, report: WorkerReport) -> None:
        logger.info(f"[{ctx.name}] Claimed {site.site_name} (id={site.site_id})")
        try:
            result = self.process_site(site, ctx)
        except StationSyncError as e:
            logger.error(f"[{ctx.name}] {site.site_name} (id={site.site_id}): failed - {e}")
            self.board.finish(site.site_id, ClaimState.FAILED)
            report.processed.append(site.site_id)
            return
        except Exception as e:
            logger.exception(
                f"[{ctx.name}] {site.site_name} (id={site.site_id}): unexpected error - {e}"
            )
            self.board.finish(site.site_id, ClaimState.FAILED)
            report.processed.append(site.site_id)
            return

        status = getattr(result, "status", ClaimState.DOWNLOADED.value)
        final = ClaimState.FAILED if status == ClaimState.FAILED.value else ClaimState.DOWNLOADED
        self.board.finish(site.site_id, final)
        report.processed.append(site.site_id)
        report.results.append(result)

    def _work(self, ctx: WorkerContext, sites: Sequence[Site]) -> WorkerReport:
        report = WorkerReport(name=ctx.name)
        for site in sites:
            if ctx.cancelled:
                logger.info(f"[{ctx.name}] Cancelled, stopping")
                break
            if not self.board.try_claim(site.site_id, ctx.name):
                logger.debug(f"[{ctx.name}] Skipping site {site.site_name}")
                continue
            self._process(site, ctx, report)
        logger.info(f"[{ctx.name}] Done: {len(report.processed)} sites processed")
        return report

    def run(self, sites: Sequence[Site]) -> list[WorkerReport]:
        """Process every site once, spread over the workers.

        Args:
            sites: Ordered site list for this run

        Returns:
            One WorkerReport per worker, in worker order
        """
        sites = list(sites)
        self.board = ClaimBoard([s.site_id for s in sites])

        if self.strategy == ClaimStrategy.SHARD:
            assignments = partition_sites(sites, self.workers)
        else:
            assignments = [sites] * self.workers

        contexts = [
            WorkerContext(name=f"worker-{i + 1}", index=i, cancel_event=self._cancel_event)
            for i in range(self.workers)
        ]

        logger.info(
            f"Starting {self.workers} workers for {len(sites)} sites "
            f"(strategy={self.strategy.value})"
        )

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [
                executor.submit(self._work, ctx, assigned)
                for ctx, assigned in zip(contexts, assignments)
            ]
            return [future.result() for future in futures]
