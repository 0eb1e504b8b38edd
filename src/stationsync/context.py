"""Worker identity passed through every per-site call."""

import threading
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class WorkerContext:
    """Identity and cancellation handle passed to every per-site call."""

    name: str
    index: int
    cancel_event: threading.Event = field(default_factory=threading.Event, compare=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


def log_prefix(ctx: Optional[WorkerContext]) -> str:
    """``"[worker-N] "`` for log messages, empty outside a worker."""
    return f"[{ctx.name}] " if ctx is not None else ""
