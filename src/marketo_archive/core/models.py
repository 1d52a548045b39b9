from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Union


@dataclass(frozen=True)
class RequestSpec:
    """Specification for an HTTP request."""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    form: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncJob:
    """Runtime settings for one sync run, derived from validated config."""

    lookback_days: int = 90
    item_delay_ms: int = 100
    batch_size: int = 50
    property_prefix: str = "mkto"
    marker_name: str = ".sync-state.json"


@dataclass(frozen=True)
class SyncState:
    """Durable watermark of the last successful sync."""

    last_sync_timestamp: Optional[datetime] = None

    @property
    def is_first_run(self) -> bool:
        return self.last_sync_timestamp is None


@dataclass(frozen=True)
class CandidateItem:
    """A source email eligible for this run's archival pass."""

    id: int
    display_name: str
    created_at: datetime
    updated_at: datetime
    group_label: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class ItemPayload:
    """Fetched content of a candidate item."""

    html_body: Optional[str] = None
    subject: Optional[str] = None
    sender_name: Optional[str] = None
    sender_address: Optional[str] = None
    text_body: Optional[str] = None

    @property
    def has_body(self) -> bool:
        return bool(self.html_body and self.html_body.strip())


@dataclass(frozen=True)
class ArchivePlacement:
    """Where an item lands in the repository."""

    container_path: Tuple[str, ...]
    file_base_name: str

    @property
    def html_name(self) -> str:
        return f"{self.file_base_name}.html"

    @property
    def metadata_name(self) -> str:
        return f"{self.file_base_name}-metadata.json"

    @property
    def display_path(self) -> str:
        return "/".join(self.container_path)


@dataclass(frozen=True)
class RepositoryNode:
    """A node (folder or file) in the target repository."""

    id: str
    name: str = ""
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


# ---------- Materialization outcomes ----------


@dataclass(frozen=True)
class Uploaded:
    """The item was newly archived."""

    node: RepositoryNode


@dataclass(frozen=True)
class AlreadyExists:
    """A node with the item's archive name was already present."""

    node: RepositoryNode


@dataclass(frozen=True)
class Failed:
    """The item could not be archived this run."""

    item_id: int
    reason: str


Outcome = Union[Uploaded, AlreadyExists, Failed]


@dataclass
class BatchOutcome:
    """Counters for one pass of the batch runner."""

    uploaded: int = 0
    already_archived: int = 0
    failed: int = 0
    skipped: int = 0
    failed_ids: List[int] = field(default_factory=list)
    failures: Dict[str, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return self.uploaded + self.already_archived

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def bump_failure(self, key: str) -> None:
        """Increment the count for a specific failure type."""
        self.failures[key] = self.failures.get(key, 0) + 1


@dataclass
class RunResult:
    """Summary of one sync run."""

    started_at: datetime
    finished_at: datetime
    total_candidates: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    uploaded: int = 0
    already_archived: int = 0
    failed_ids: Set[int] = field(default_factory=set)
    since: Optional[datetime] = None
    state_saved: bool = False

    @property
    def duration_ms(self) -> int:
        delta = self.finished_at - self.started_at
        return max(0, int(delta.total_seconds() * 1000))

    @property
    def exit_code(self) -> int:
        return 1 if self.failed > 0 else 0
