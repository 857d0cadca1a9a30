"""Batch deletion with retry and capped exponential backoff."""

import logging
import threading
import time
from typing import Callable, List, Optional, Sequence

from errors import Throttled
from models import (
    UNRESOLVED_CANCELLED,
    UNRESOLVED_RETRIES_EXHAUSTED,
    BatchResult,
    ItemKey,
)

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 25


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay in seconds before retry number ``attempt`` (0-based)."""
    return min(cap, base * (2**attempt))


class BatchDeleter:
    """Delete key batches for one worker, resubmitting unprocessed keys.

    Not shared between threads: each segment worker owns its own deleter.
    Shared progress goes through ``stats``.
    """

    def __init__(
        self,
        store,
        table_name: str,
        stats=None,
        batch_size: int = MAX_BATCH_SIZE,
        max_retries: int = 5,
        backoff_base: float = 0.1,
        backoff_cap: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self.store = store
        self.table_name = table_name
        self.stats = stats
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.cancel_event = cancel_event or threading.Event()
        self.sleep = sleep

    def delete(
        self, keys: Sequence[ItemKey], result: Optional[BatchResult] = None
    ) -> BatchResult:
        """Delete ``keys`` in store-sized chunks.

        Non-retryable store errors propagate; every other key ends up either
        deleted or in ``unresolved_keys``. Pass ``result`` to keep the
        partial tally when an error propagates.
        """
        if result is None:
            result = BatchResult()

        for start in range(0, len(keys), self.batch_size):
            if self.cancel_event.is_set():
                result.cancelled = True
                self._record_unresolved(result, list(keys[start:]), UNRESOLVED_CANCELLED)
                break

            chunk = list(keys[start : start + self.batch_size])
            self._delete_batch(chunk, result)

            if result.cancelled:
                remaining = list(keys[start + len(chunk) :])
                self._record_unresolved(result, remaining, UNRESOLVED_CANCELLED)
                break

        return result

    def _delete_batch(self, batch: List[ItemKey], result: BatchResult):
        pending = batch
        retry_count = 0

        while True:
            result.attempts += 1
            try:
                unprocessed = self.store.batch_delete(self.table_name, pending)
            except Throttled:
                logger.debug(f"Batch of {len(pending)} keys throttled")
                unprocessed = pending

            confirmed = max(0, len(pending) - len(unprocessed))
            if confirmed:
                result.deleted += confirmed
                if self.stats is not None:
                    self.stats.add_deleted(confirmed)

            if not unprocessed:
                return

            pending = list(unprocessed)
            if retry_count >= self.max_retries:
                logger.error(
                    f"Giving up on {len(pending)} keys after {retry_count} retries"
                )
                self._record_unresolved(result, pending, UNRESOLVED_RETRIES_EXHAUSTED)
                return

            wait_time = backoff_delay(retry_count, self.backoff_base, self.backoff_cap)
            logger.warning(
                f"{len(pending)} unprocessed keys, retrying in {wait_time:.2f}s "
                f"(retry {retry_count + 1}/{self.max_retries})"
            )
            self.sleep(wait_time)
            retry_count += 1

            if self.cancel_event.is_set():
                result.cancelled = True
                self._record_unresolved(result, pending, UNRESOLVED_CANCELLED)
                return

    def _record_unresolved(self, result: BatchResult, keys: List[ItemKey], reason: str):
        if not keys:
            return
        result.unresolved_keys.extend(keys)
        result.reasons[reason] = result.reasons.get(reason, 0) + len(keys)
        if self.stats is not None:
            self.stats.add_unresolved(reason, len(keys))
