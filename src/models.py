"""Data model shared by the purge components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Low-level client representation, e.g. {"pk": {"S": "user#1"}}
ItemKey = Dict[str, Dict[str, Any]]

UNRESOLVED_RETRIES_EXHAUSTED = "retries_exhausted"
UNRESOLVED_CANCELLED = "cancelled"
UNRESOLVED_SEGMENT_FAILED = "segment_failed"


class KeyRole(Enum):
    PARTITION = "HASH"
    SORT = "RANGE"


@dataclass(frozen=True)
class KeySpec:
    attribute_name: str
    role: KeyRole

    def __str__(self) -> str:
        return f"{self.attribute_name} ({self.role.value})"


@dataclass(frozen=True)
class Segment:
    segment_id: int
    total_segments: int

    def __post_init__(self):
        if self.total_segments < 1:
            raise ValueError("total_segments must be at least 1")
        if not 0 <= self.segment_id < self.total_segments:
            raise ValueError(
                f"segment_id {self.segment_id} outside 0..{self.total_segments - 1}"
            )

    def __str__(self) -> str:
        return f"{self.segment_id}/{self.total_segments}"


@dataclass
class ScanPage:
    items: List[ItemKey]
    next_cursor: Optional[ItemKey] = None

    @property
    def exhausted(self) -> bool:
        return not self.next_cursor


@dataclass
class BatchResult:
    """Outcome of deleting one run of keys."""

    deleted: int = 0
    unresolved_keys: List[ItemKey] = field(default_factory=list)
    reasons: Dict[str, int] = field(default_factory=dict)
    attempts: int = 0
    cancelled: bool = False

    @property
    def unresolved(self) -> int:
        return len(self.unresolved_keys)


@dataclass
class SegmentResult:
    segment_id: int
    pages: int = 0
    scanned: int = 0
    deleted: int = 0
    unresolved: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def unresolved_count(self) -> int:
        return sum(self.unresolved.values())

    def add_unresolved(self, reason: str, count: int):
        if count:
            self.unresolved[reason] = self.unresolved.get(reason, 0) + count


class PurgeState(Enum):
    IDLE = "idle"
    SCHEMA_RESOLVED = "schema_resolved"
    DRY_RUN_REPORTED = "dry_run_reported"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class PurgeSummary:
    table_name: str
    state: PurgeState
    dry_run: bool = False
    key_schema: Tuple[KeySpec, ...] = ()
    estimated_item_count: Optional[int] = None
    scanned: int = 0
    deleted: int = 0
    elapsed_seconds: float = 0.0
    unresolved: Dict[str, int] = field(default_factory=dict)
    segments: List[SegmentResult] = field(default_factory=list)

    @property
    def average_rate(self) -> float:
        if self.elapsed_seconds > 0:
            return self.deleted / self.elapsed_seconds
        return 0.0

    @property
    def unresolved_count(self) -> int:
        return sum(self.unresolved.values())

    @property
    def failed_segments(self) -> List[SegmentResult]:
        return [s for s in self.segments if s.failed]

    @property
    def cancelled(self) -> bool:
        return self.state == PurgeState.ABORTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "state": self.state.value,
            "dry_run": self.dry_run,
            "key_schema": [str(k) for k in self.key_schema],
            "estimated_item_count": self.estimated_item_count,
            "scanned": self.scanned,
            "deleted": self.deleted,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "average_rate": round(self.average_rate, 2),
            "unresolved": dict(self.unresolved),
            "unresolved_count": self.unresolved_count,
            "failed_segments": {
                s.segment_id: s.error for s in self.failed_segments
            },
        }
