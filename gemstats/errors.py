class RetryableTaskError(Exception):
    """Task failed but should be retried (transient failure)."""

class TerminalTaskError(Exception):
    """Task failed and should not be retried (bad input, invariant broken)."""

class FetchFailure(RetryableTaskError):
    """Log object could not be read or decompressed."""

class MergeFailure(RetryableTaskError):
    """Bulk update of the download counters failed."""

class ClaimStoreUnavailable(RetryableTaskError):
    """Marker store could not be reached while claiming or completing a log."""

class AlreadyProcessedError(TerminalTaskError):
    """Log is already processed, or another worker holds the claim."""
