"""Shared purge counters and the periodic progress reporter."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    scanned: int
    deleted: int
    elapsed_seconds: float
    unresolved: int = 0

    @property
    def rate(self) -> float:
        """Deleted items per second."""
        elapsed_ms = self.elapsed_seconds * 1000
        if elapsed_ms > 0:
            return self.deleted / elapsed_ms * 1000
        return 0.0

    def render(self) -> str:
        return (
            f"Scanned: {self.scanned:,} | Deleted: {self.deleted:,} | "
            f"Rate: {self.rate:.0f} items/sec | Time: {self.elapsed_seconds:.1f}s"
        )


class PurgeStats:
    """Counters updated concurrently by every segment worker.

    Each update takes the lock; ``scanned`` is always bumped for a page
    before any of its keys are deleted, so ``deleted <= scanned`` holds for
    every snapshot.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self.start_time = clock()
        self._scanned = 0
        self._deleted = 0
        self._unresolved: Dict[str, int] = {}

    def add_scanned(self, count: int):
        with self._lock:
            self._scanned += count

    def add_deleted(self, count: int):
        with self._lock:
            self._deleted += count

    def add_unresolved(self, reason: str, count: int):
        with self._lock:
            self._unresolved[reason] = self._unresolved.get(reason, 0) + count

    @property
    def scanned(self) -> int:
        with self._lock:
            return self._scanned

    @property
    def deleted(self) -> int:
        with self._lock:
            return self._deleted

    @property
    def unresolved(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._unresolved)

    def elapsed(self) -> float:
        return self._clock() - self.start_time

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                scanned=self._scanned,
                deleted=self._deleted,
                elapsed_seconds=self._clock() - self.start_time,
                unresolved=sum(self._unresolved.values()),
            )


class ProgressReporter:
    """Background thread emitting a snapshot of ``stats`` every interval."""

    def __init__(
        self,
        stats: PurgeStats,
        interval: float = 2.0,
        emit: Optional[Callable[[ProgressSnapshot], None]] = None,
    ):
        self.stats = stats
        self.interval = interval
        self.emit = emit or self._log_snapshot
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="purge-progress", daemon=True
        )
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.emit(self.stats.snapshot())
            except Exception:
                logger.exception("Progress reporting failed")

    @staticmethod
    def _log_snapshot(snapshot: ProgressSnapshot):
        logger.info(snapshot.render())

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
