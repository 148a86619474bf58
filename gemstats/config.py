from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class ProcessorConfig:
    db_dsn: str
    aws_region: str

    event_queue_url: Optional[str] = None  # S3 event notifications
    task_queue_url: Optional[str] = None   # one message per log object

    # Merge counts into the counter store; when off, counts are only logged
    processing_enabled: bool = False

    poll_wait_seconds: int = 20
    visibility_timeout_seconds: int = 300

    # Shutdown behavior:
    # > 0: Exit after N empty polls (e.g., 6 * 20s = 2 minutes) - for batch runs
    # <= 0: Run indefinitely (daemon mode) - for systemd services
    shutdown_after_empty_polls: int = 6
