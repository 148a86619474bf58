from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import List

@dataclass(frozen=True)
class ProcessingTask:
    bucket: str
    key: str               # already percent-decoded

    @property
    def marker_key(self) -> str:
        return f"fastly-log:{self.bucket}:{self.key}"

@dataclass(frozen=True)
class BulkUpdateEntry:
    rubygem_name: str          # e.g. "rails"
    version_full_name: str     # e.g. "rails-4.0.0"
    count: int

class MarkerState(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"

class TaskState(str, Enum):
    FETCHING = "fetching"
    PARSING = "parsing"
    FLAG_CHECK = "flag_check"
    CLAIMING = "claiming"
    MERGING = "merging"
    DONE = "done"
    DISABLED = "disabled"      # counts computed, merge switched off
    ABORTED = "aborted"        # already processed / claimed elsewhere
    FAILED = "failed"

@dataclass(frozen=True)
class TaskResult:
    task: ProcessingTask
    state: TaskState
    counts: Counter = field(default_factory=Counter)
    entries: List[BulkUpdateEntry] = field(default_factory=list)

    @property
    def total_downloads(self) -> int:
        return sum(self.counts.values())

@dataclass(frozen=True)
class SqsMessage:
    message_id: str
    receipt_handle: str
    body: str
