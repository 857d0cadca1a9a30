"""Parallel table purge: one scan-delete pipeline per segment."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from batch_deleter import MAX_BATCH_SIZE, BatchDeleter
from errors import InvalidConfigurationError, PurgeError, SchemaUnavailable
from key_schema import KeySchemaResolver
from models import (
    UNRESOLVED_SEGMENT_FAILED,
    BatchResult,
    KeySpec,
    PurgeState,
    PurgeSummary,
    Segment,
    SegmentResult,
)
from progress import ProgressReporter, PurgeStats
from segment_scanner import SegmentedScanner

logger = logging.getLogger(__name__)

MIN_SEGMENTS = 1
MAX_SEGMENTS = 10


@dataclass(frozen=True)
class PurgeOptions:
    table_name: str
    total_segments: int = 4
    dry_run: bool = False
    page_size: int = 100
    batch_size: int = MAX_BATCH_SIZE
    max_retries: int = 5
    backoff_base: float = 0.1
    backoff_cap: float = 5.0
    progress_interval: float = 2.0

    def __post_init__(self):
        if not self.table_name:
            raise InvalidConfigurationError("table_name", "table name is required")
        if not MIN_SEGMENTS <= self.total_segments <= MAX_SEGMENTS:
            raise InvalidConfigurationError(
                "total_segments", f"must be between {MIN_SEGMENTS} and {MAX_SEGMENTS}"
            )
        if self.page_size < 1:
            raise InvalidConfigurationError("page_size", "must be at least 1")
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise InvalidConfigurationError(
                "batch_size", f"must be between 1 and {MAX_BATCH_SIZE}"
            )
        if self.max_retries < 0:
            raise InvalidConfigurationError("max_retries", "must not be negative")
        if self.backoff_base < 0 or self.backoff_cap < self.backoff_base:
            raise InvalidConfigurationError(
                "backoff", "need 0 <= backoff_base <= backoff_cap"
            )
        if self.progress_interval <= 0:
            raise InvalidConfigurationError("progress_interval", "must be positive")


class PurgeOrchestrator:
    """Drive a full purge of one table.

    ``run()`` walks IDLE -> SCHEMA_RESOLVED -> (DRY_RUN_REPORTED | RUNNING)
    -> COMPLETED | ABORTED. A non-retryable store error aborts only the
    segment it happened in; ``cancel()`` stops every worker at its next
    page or batch boundary.
    """

    def __init__(
        self,
        store,
        options: PurgeOptions,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.options = options
        self.sleep = sleep
        self.clock = clock
        self.state = PurgeState.IDLE
        self.stats: Optional[PurgeStats] = None
        self._cancel_event = threading.Event()

    def cancel(self):
        if not self._cancel_event.is_set():
            logger.warning("Cancellation requested, stopping workers at the next boundary")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self) -> PurgeSummary:
        table_name = self.options.table_name

        try:
            key_schema = KeySchemaResolver(self.store).resolve(table_name)
        except SchemaUnavailable:
            self.state = PurgeState.ABORTED
            raise
        self.state = PurgeState.SCHEMA_RESOLVED

        if self.options.dry_run:
            return self._dry_run(key_schema)

        return self._purge(key_schema)

    def _dry_run(self, key_schema: Tuple[KeySpec, ...]) -> PurgeSummary:
        estimate = self.store.estimate_item_count(self.options.table_name)
        logger.info(
            f"Dry run: would purge ~{estimate if estimate is not None else 'unknown'} "
            f"items from {self.options.table_name} using "
            f"{self.options.total_segments} parallel segments"
        )
        self.state = PurgeState.DRY_RUN_REPORTED
        return PurgeSummary(
            table_name=self.options.table_name,
            state=self.state,
            dry_run=True,
            key_schema=key_schema,
            estimated_item_count=estimate,
        )

    def _purge(self, key_schema: Tuple[KeySpec, ...]) -> PurgeSummary:
        total_segments = self.options.total_segments
        self.stats = PurgeStats(clock=self.clock)
        segment_results = []

        logger.info(f"Starting purge with {total_segments} parallel segments...")
        self.state = PurgeState.RUNNING

        with ProgressReporter(self.stats, self.options.progress_interval):
            with ThreadPoolExecutor(
                max_workers=total_segments, thread_name_prefix="purge-segment"
            ) as executor:
                futures = [
                    executor.submit(
                        self._purge_segment,
                        Segment(segment_id, total_segments),
                        key_schema,
                    )
                    for segment_id in range(total_segments)
                ]

                try:
                    for future in as_completed(futures):
                        try:
                            segment_results.append(future.result())
                        except Exception:
                            # Not a store error: stop the siblings, then propagate
                            self.cancel()
                            self.state = PurgeState.ABORTED
                            raise
                except KeyboardInterrupt:
                    self.cancel()
                    wait(futures)
                    segment_results = [f.result() for f in futures]

        self.state = PurgeState.ABORTED if self.cancelled else PurgeState.COMPLETED
        segment_results.sort(key=lambda r: r.segment_id)

        summary = PurgeSummary(
            table_name=self.options.table_name,
            state=self.state,
            key_schema=key_schema,
            scanned=self.stats.scanned,
            deleted=self.stats.deleted,
            elapsed_seconds=self.stats.elapsed(),
            unresolved=self.stats.unresolved,
            segments=segment_results,
        )
        logger.info(
            f"Purge {self.state.value}: deleted {summary.deleted:,} of "
            f"{summary.scanned:,} scanned items in {summary.elapsed_seconds:.2f}s"
        )
        return summary

    def _purge_segment(
        self, segment: Segment, key_schema: Tuple[KeySpec, ...]
    ) -> SegmentResult:
        result = SegmentResult(segment_id=segment.segment_id)
        opts = self.options

        scanner = SegmentedScanner(
            self.store,
            opts.table_name,
            [k.attribute_name for k in key_schema],
            segment,
            page_size=opts.page_size,
            max_retries=opts.max_retries,
            backoff_base=opts.backoff_base,
            backoff_cap=opts.backoff_cap,
            cancel_event=self._cancel_event,
            sleep=self.sleep,
        )
        deleter = BatchDeleter(
            self.store,
            opts.table_name,
            stats=self.stats,
            batch_size=opts.batch_size,
            max_retries=opts.max_retries,
            backoff_base=opts.backoff_base,
            backoff_cap=opts.backoff_cap,
            cancel_event=self._cancel_event,
            sleep=self.sleep,
        )

        page, batch_result = [], BatchResult()
        try:
            for page in scanner.pages():
                result.pages += 1
                result.scanned += len(page)
                self.stats.add_scanned(len(page))

                batch_result = BatchResult()
                deleter.delete(page, batch_result)
                self._merge_batch(result, batch_result)
                page, batch_result = [], BatchResult()

        except PurgeError as e:
            logger.error(f"Segment {segment} aborted: {e.message}")
            logger.debug(f"Segment {segment} error details: {e.to_dict()}")
            result.error = e.message

            self._merge_batch(result, batch_result)
            # Keys of the interrupted page that were neither confirmed nor retried out
            abandoned = len(page) - batch_result.deleted - batch_result.unresolved
            if abandoned > 0:
                result.add_unresolved(UNRESOLVED_SEGMENT_FAILED, abandoned)
                self.stats.add_unresolved(UNRESOLVED_SEGMENT_FAILED, abandoned)

        result.cancelled = self.cancelled

        logger.info(
            f"Segment {segment} finished: {result.scanned} scanned, "
            f"{result.deleted} deleted"
            + (f", {result.unresolved_count} unresolved" if result.unresolved else "")
        )
        return result

    @staticmethod
    def _merge_batch(result: SegmentResult, batch_result: BatchResult):
        result.deleted += batch_result.deleted
        for reason, count in batch_result.reasons.items():
            result.add_unresolved(reason, count)
