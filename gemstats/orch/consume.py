from __future__ import annotations
import json
import logging
from typing import Any, Dict, List
from urllib.parse import unquote_plus

from gemstats.core.models import ProcessingTask
from gemstats.errors import RetryableTaskError, TerminalTaskError
from gemstats.io.sqs import SQSClient

logger = logging.getLogger("gemstats.orch.consume")


def tasks_from_event(event: Dict[str, Any]) -> List[ProcessingTask]:
    """
    Extract one ProcessingTask per object referenced by an S3 event notification.

    Object keys arrive URL-encoded ('+' for spaces), e.g.
    'fastly%2F2015-10-12T21%3A00.gz' -> 'fastly/2015-10-12T21:00.gz'.
    Events without records (such as s3:TestEvent) yield nothing.

    Raises:
        TerminalTaskError: If a record lacks the bucket name or object key
    """
    records = event.get('Records')
    if not records:
        logger.info(f"S3 event without records ignored: {event.get('Event', 'unknown')}")
        return []

    tasks = []
    for record in records:
        try:
            bucket = record['s3']['bucket']['name']
            key = unquote_plus(record['s3']['object']['key'])
        except (KeyError, TypeError) as e:
            raise TerminalTaskError(f"Malformed S3 event record: {record!r}") from e
        tasks.append(ProcessingTask(bucket=bucket, key=key))
    return tasks


def task_to_body(task: ProcessingTask) -> str:
    return json.dumps({'bucket': task.bucket, 'key': task.key})


def task_from_body(body: str) -> ProcessingTask:
    """
    Raises:
        TerminalTaskError: If the body is not a task message
    """
    try:
        data = json.loads(body)
        return ProcessingTask(bucket=data['bucket'], key=data['key'])
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise TerminalTaskError(f"Invalid task message body: {body[:200]!r}") from e


def enqueue_tasks(sqs: SQSClient, queue_url: str, tasks: List[ProcessingTask]) -> int:
    """
    Send one task queue message per ProcessingTask.

    Returns:
        Count of tasks enqueued

    Raises:
        RetryableTaskError: If SQS rejects any message; tasks already sent may
            be sent again on redelivery, which the processor deduplicates
    """
    if not tasks:
        return 0
    try:
        count = sqs.send_batch(queue_url, [task_to_body(t) for t in tasks])
    except RuntimeError as e:
        raise RetryableTaskError(f"Failed to enqueue {len(tasks)} tasks: {e}") from e
    logger.info(f"Enqueued {count} log processing tasks")
    return count


class EventConsumer:
    """Turns S3 event notification messages into task queue messages."""

    def __init__(self, sqs: SQSClient, task_queue_url: str):
        self.sqs = sqs
        self.task_queue_url = task_queue_url

    def handle_body(self, body: str) -> int:
        """
        Handle one event queue message body.

        Returns:
            Number of tasks enqueued
        """
        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise TerminalTaskError(f"Event message is not JSON: {body[:200]!r}") from e
        if not isinstance(event, dict):
            raise TerminalTaskError(f"Event message is not a JSON object: {body[:200]!r}")

        tasks = tasks_from_event(event)
        for task in tasks:
            logger.debug(f"Log object referenced: s3://{task.bucket}/{task.key}")
        return enqueue_tasks(self.sqs, self.task_queue_url, tasks)
