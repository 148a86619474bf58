from __future__ import annotations
import logging
import time
from collections import Counter
from typing import Iterable, Iterator, List, Optional, Protocol

from gemstats.config import ProcessorConfig
from gemstats.core.dedup import DedupGate
from gemstats.core.log_parser import download_counts
from gemstats.core.models import BulkUpdateEntry, ProcessingTask, TaskResult, TaskState
from gemstats.errors import AlreadyProcessedError, MergeFailure

logger = logging.getLogger("gemstats.core.processor")


class LineSource(Protocol):
    def fetch(self, bucket: str, key: str) -> Iterator[str]: ...


class NameResolver(Protocol):
    def rubygem_name_for(self, version_full_name: str) -> Optional[str]: ...


class CounterStore(Protocol):
    """Additive merge of download counts; one call per task."""

    def bulk_update(self, entries: Iterable[BulkUpdateEntry]) -> None: ...


class FastlyLogProcessor:
    """
    Counts gem downloads in one Fastly log object and merges them into the
    counter store at most once.

    Flow:
    1. Fetch the log (gunzipped if needed) and fold it into per-version counts
    2. If processing is switched off, log the counts and stop
    3. Claim the log in the marker store; already claimed -> AlreadyProcessedError
    4. Resolve gem names, dropping versions we don't know about
    5. Bulk update the counters
    6. Mark the log processed

    A failure in steps 4-6 leaves the marker in 'processing' until its short
    expiry lapses, after which a redelivered task may claim it again.
    """

    def __init__(
        self,
        cfg: ProcessorConfig,
        fetcher: LineSource,
        gate: DedupGate,
        names: NameResolver,
        counters: CounterStore,
    ):
        self.cfg = cfg
        self.fetcher = fetcher
        self.gate = gate
        self.names = names
        self.counters = counters

    def run(self, task: ProcessingTask) -> TaskResult:
        """
        Process one log object.

        Returns:
            TaskResult in state DONE, or DISABLED when merging is switched off

        Raises:
            FetchFailure: Log could not be read
            AlreadyProcessedError: Log already handled or in flight elsewhere
            ClaimStoreUnavailable: Marker store unreachable
            MergeFailure: Counter update failed
        """
        start_time = time.time()
        state = TaskState.FETCHING
        try:
            lines = self.fetcher.fetch(task.bucket, task.key)
            state = TaskState.PARSING
            counts = download_counts(lines)

            state = TaskState.FLAG_CHECK
            # Read once so a single run never sees the switch flip
            enabled = self.cfg.processing_enabled
            if not enabled:
                logger.info(
                    f"Processed Fastly log counts for s3://{task.bucket}/{task.key} (merge disabled)",
                    extra={"counts": dict(counts)},
                )
                return TaskResult(task=task, state=TaskState.DISABLED, counts=counts)

            state = TaskState.CLAIMING
            if not self.gate.try_claim(task):
                raise AlreadyProcessedError(f"Already processed bucket: {task.bucket} key: {task.key}")

            entries = self.bulk_update_entries(counts)

            state = TaskState.MERGING
            try:
                self.counters.bulk_update(entries)
            except Exception as e:
                raise MergeFailure(f"Bulk update failed for s3://{task.bucket}/{task.key}: {e}") from e

            self.gate.mark_done(task)
            state = TaskState.DONE
        except Exception as exc:
            failed_in = state
            state = TaskState.ABORTED if isinstance(exc, AlreadyProcessedError) else TaskState.FAILED
            logger.debug(f"Task s3://{task.bucket}/{task.key} ended {state.value} during {failed_in.value}")
            raise

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Merged {sum(counts.values())} downloads over {len(entries)} versions "
            f"from s3://{task.bucket}/{task.key} in {elapsed_ms:.0f}ms"
        )
        return TaskResult(task=task, state=state, counts=counts, entries=entries)

    def bulk_update_entries(self, counts: Counter) -> List[BulkUpdateEntry]:
        """
        Turn download counts into counter store entries, e.g.
            [BulkUpdateEntry('rails', 'rails-4.0.0', 25), BulkUpdateEntry('rails', 'rails-4.2.0', 50)]
        """
        entries = []
        for full_name, count in counts.items():
            name = self.names.rubygem_name_for(full_name)
            # Skip downloads for versions we have no record of
            if name is None:
                logger.debug(f"Unknown version {full_name!r}, dropping {count} downloads")
                continue
            entries.append(BulkUpdateEntry(rubygem_name=name, version_full_name=full_name, count=count))
        return entries
