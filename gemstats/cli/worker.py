"""
gemstats worker CLI - Run queue pollers.

Usage:
  gemstats consume --event-queue-url https://sqs... --task-queue-url https://sqs...
  gemstats worker --task-queue-url https://sqs...

Environment variables:
  GEMSTATS_SQL_HOST, GEMSTATS_SQL_PORT, GEMSTATS_SQL_USER, GEMSTATS_SQL_PASSWORD, GEMSTATS_SQL_DATABASE
  GEMSTATS_REGION (AWS region)
  GEMSTATS_EVENT_QUEUE_URL, GEMSTATS_TASK_QUEUE_URL
  FASTLY_LOG_PROCESSOR_ENABLED ("true" to update download counters)
"""

import logging
import os
import sys
from typing import Optional

import click
from dotenv import load_dotenv

from gemstats.config import ProcessorConfig

# Use "gemstats" namespace so logs appear at INFO level
logger = logging.getLogger("gemstats.cli.worker")

# Load environment variables from .env file if present
load_dotenv()


def processing_enabled_from_env() -> bool:
    return os.environ.get('FASTLY_LOG_PROCESSOR_ENABLED') == 'true'


def build_config(
    region: Optional[str] = None,
    event_queue_url: Optional[str] = None,
    task_queue_url: Optional[str] = None,
    need_db: bool = True,
    **overrides,
) -> ProcessorConfig:
    """
    Build ProcessorConfig from CLI options with environment fallbacks.

    Exits with status 1 if the database settings are missing and need_db is set.
    """
    from gemstats.io.db import build_dsn_from_env

    dsn = ""
    if need_db:
        try:
            dsn = build_dsn_from_env()
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)

    return ProcessorConfig(
        db_dsn=dsn,
        aws_region=region or os.environ.get('GEMSTATS_REGION', 'us-west-2'),
        event_queue_url=event_queue_url or os.environ.get('GEMSTATS_EVENT_QUEUE_URL'),
        task_queue_url=task_queue_url or os.environ.get('GEMSTATS_TASK_QUEUE_URL'),
        processing_enabled=processing_enabled_from_env(),
        **overrides,
    )


def build_processor(cfg: ProcessorConfig, db):
    """Wire FastlyLogProcessor to S3 and the database."""
    from gemstats.core.dedup import DedupGate
    from gemstats.core.processor import FastlyLogProcessor
    from gemstats.io.s3 import LogFetcher

    return FastlyLogProcessor(
        cfg=cfg,
        fetcher=LogFetcher(cfg.aws_region),
        gate=DedupGate(db),
        names=db,
        counters=db,
    )


@click.command()
@click.option('--event-queue-url', type=str, help='SQS queue receiving S3 event notifications (default: GEMSTATS_EVENT_QUEUE_URL)')
@click.option('--task-queue-url', type=str, help='SQS queue for log processing tasks (default: GEMSTATS_TASK_QUEUE_URL)')
@click.option('--poll-wait', type=int, default=20, help='SQS long-poll wait time (seconds)')
@click.option('--visibility-timeout', type=int, default=60, help='SQS visibility timeout (seconds)')
@click.option('--shutdown-after-empty', type=int, default=0, help='Shutdown after N empty polls (<= 0: never)')
@click.option('--region', type=str, help='AWS region (default: from GEMSTATS_REGION env or us-west-2)')
def consume(event_queue_url, task_queue_url, poll_wait, visibility_timeout, shutdown_after_empty, region):
    """Consume S3 event notifications and enqueue one task per log object."""

    # Setup logging FIRST so all subsequent logging calls use JSON format
    from gemstats.logging_setup import setup_logging
    setup_logging()

    from gemstats.core.worker_runtime import QueueWorkerRuntime
    from gemstats.io.sqs import SQSClient
    from gemstats.orch.consume import EventConsumer

    cfg = build_config(
        region=region,
        event_queue_url=event_queue_url,
        task_queue_url=task_queue_url,
        need_db=False,
        poll_wait_seconds=poll_wait,
        visibility_timeout_seconds=visibility_timeout,
        shutdown_after_empty_polls=shutdown_after_empty,
    )
    if not cfg.event_queue_url or not cfg.task_queue_url:
        logger.error("Both event and task queue URLs are required (options or GEMSTATS_*_QUEUE_URL env)")
        sys.exit(1)

    logger.info("Starting event consumer", extra={"region": cfg.aws_region, "event_queue_url": cfg.event_queue_url, "task_queue_url": cfg.task_queue_url})

    sqs = SQSClient(cfg.aws_region)
    consumer = EventConsumer(sqs, cfg.task_queue_url)
    runtime = QueueWorkerRuntime(cfg, sqs, cfg.event_queue_url, consumer.handle_body, name="consumer")

    try:
        runtime.run_forever()
    except KeyboardInterrupt:
        logger.info("Consumer interrupted by user")
    logger.info("Consumer shutdown complete")


@click.command()
@click.option('--task-queue-url', type=str, help='SQS queue for log processing tasks (default: GEMSTATS_TASK_QUEUE_URL)')
@click.option('--poll-wait', type=int, default=20, help='SQS long-poll wait time (seconds)')
@click.option('--visibility-timeout', type=int, default=300, help='SQS visibility timeout (seconds)')
@click.option('--shutdown-after-empty', type=int, default=6, help='Shutdown after N empty polls (<= 0: never)')
@click.option('--region', type=str, help='AWS region (default: from GEMSTATS_REGION env or us-west-2)')
def worker(task_queue_url, poll_wait, visibility_timeout, shutdown_after_empty, region):
    """Process log tasks and merge download counts."""

    from gemstats.logging_setup import setup_logging
    setup_logging()

    from gemstats.core.worker_runtime import QueueWorkerRuntime
    from gemstats.io.db import DBClient
    from gemstats.io.sqs import SQSClient
    from gemstats.orch.consume import task_from_body

    cfg = build_config(
        region=region,
        task_queue_url=task_queue_url,
        poll_wait_seconds=poll_wait,
        visibility_timeout_seconds=visibility_timeout,
        shutdown_after_empty_polls=shutdown_after_empty,
    )
    if not cfg.task_queue_url:
        logger.error("Missing task queue URL. Provide --task-queue-url or set GEMSTATS_TASK_QUEUE_URL")
        sys.exit(1)

    logger.info("Starting log worker", extra={"region": cfg.aws_region, "task_queue_url": cfg.task_queue_url, "processing_enabled": cfg.processing_enabled})

    db = DBClient(cfg.db_dsn)
    processor = build_processor(cfg, db)
    sqs = SQSClient(cfg.aws_region)

    def handle(body: str):
        return processor.run(task_from_body(body))

    runtime = QueueWorkerRuntime(cfg, sqs, cfg.task_queue_url, handle, name="worker")

    try:
        runtime.run_forever()
        logger.info("Worker completed successfully")
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
    finally:
        db.close()
        logger.info("Worker shutdown complete")
