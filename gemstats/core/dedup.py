from __future__ import annotations
import logging
from datetime import timedelta
from typing import Protocol

from gemstats.core.models import MarkerState, ProcessingTask

logger = logging.getLogger("gemstats.core.dedup")

# Short expiry while updating: bounds the lock held by a worker that crashed
# mid-task. Once it lapses another execution may claim and reprocess the log.
PROCESSING_TTL = timedelta(minutes=2)
# Completion record
PROCESSED_TTL = timedelta(days=30)


class MarkerStore(Protocol):
    """
    Key/value store with expiring keys.

    Implementations raise ClaimStoreUnavailable when the store cannot be reached.
    """

    def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool: ...

    def set(self, key: str, value: str) -> None: ...

    def expire(self, key: str, ttl: timedelta) -> None: ...


class DedupGate:
    """
    At-most-once guard for log objects.

    One marker key per (bucket, key) doubles as the exclusivity lock and the
    completion record: absent -> processing (2 min) -> processed (30 days).
    Any unexpired marker, whatever its value, blocks a new claim.
    """

    def __init__(self, store: MarkerStore):
        self._store = store

    def try_claim(self, task: ProcessingTask) -> bool:
        """
        Atomically mark the log as processing if no marker exists.

        Returns:
            True if this execution now owns the log, False if it was already
            processed or is being processed elsewhere
        """
        if not self._store.set_if_absent(task.marker_key, MarkerState.PROCESSING.value, PROCESSING_TTL):
            logger.debug(f"Marker already present: {task.marker_key}")
            return False

        # Refresh; the claim itself already carries the expiry
        self._store.expire(task.marker_key, PROCESSING_TTL)
        logger.debug(f"Claimed {task.marker_key}")
        return True

    def mark_done(self, task: ProcessingTask) -> None:
        """Turn the claim into a long-lived completion record."""
        self._store.set(task.marker_key, MarkerState.PROCESSED.value)
        self._store.expire(task.marker_key, PROCESSED_TTL)
        logger.debug(f"Marked {task.marker_key} processed")
