"""Key-only paginated scan of one table segment."""

import logging
import threading
import time
from typing import Callable, Iterator, List, Optional, Sequence

from batch_deleter import backoff_delay
from errors import Throttled
from models import ItemKey, Segment

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class SegmentedScanner:
    """Enumerate item keys within one segment, strictly in cursor order.

    Uses the store's native Segment/TotalSegments scan, so segments of the
    same total never overlap and together cover the whole table.
    """

    def __init__(
        self,
        store,
        table_name: str,
        key_attributes: Sequence[str],
        segment: Segment,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = 5,
        backoff_base: float = 0.1,
        backoff_cap: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.store = store
        self.table_name = table_name
        self.key_attributes = list(key_attributes)
        self.segment = segment
        self.page_size = page_size
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.cancel_event = cancel_event or threading.Event()
        self.sleep = sleep
        self.pages_fetched = 0

    def pages(self) -> Iterator[List[ItemKey]]:
        """Yield non-empty pages of key maps until the segment is exhausted.

        Stops early, without issuing another read, once cancellation is
        requested.
        """
        cursor = None

        while not self.cancel_event.is_set():
            page = self._fetch_page(cursor)
            if page is None:
                return
            self.pages_fetched += 1

            if page.items:
                yield [self._extract_key(item) for item in page.items]

            if page.exhausted:
                logger.debug(
                    f"Segment {self.segment} exhausted after {self.pages_fetched} pages"
                )
                return
            cursor = page.next_cursor

    def _fetch_page(self, cursor):
        retry_count = 0

        while True:
            try:
                return self.store.scan_partition(
                    self.table_name,
                    self.segment.segment_id,
                    self.segment.total_segments,
                    self.key_attributes,
                    cursor,
                    self.page_size,
                )
            except Throttled:
                if retry_count >= self.max_retries:
                    logger.error(f"Max scan retries exceeded for segment {self.segment}")
                    raise
                wait_time = backoff_delay(retry_count, self.backoff_base, self.backoff_cap)
                logger.warning(
                    f"Rate limited on segment {self.segment}, waiting {wait_time:.2f}s"
                )
                self.sleep(wait_time)
                retry_count += 1

                if self.cancel_event.is_set():
                    return None

    def _extract_key(self, item) -> ItemKey:
        return {attr: item[attr] for attr in self.key_attributes}
