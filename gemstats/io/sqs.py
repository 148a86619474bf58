from __future__ import annotations
import uuid
from typing import Any, Iterable, Optional

import boto3
from botocore.exceptions import ClientError

from gemstats.core.models import SqsMessage

# SQS limit for send_message_batch
MAX_BATCH_SIZE = 10


class SQSClient:
    """AWS SQS client for the event and task queues."""

    def __init__(self, region: str, client: Any = None):
        """
        Initialize SQS client.

        Args:
            region: AWS region (e.g., "us-west-2")
            client: Pre-built boto3 SQS client (defaults to a new one for region)
        """
        self.region = region
        self.client = client or boto3.client('sqs', region_name=region)

    def receive_one(
        self,
        queue_url: str,
        wait_seconds: int,
        visibility_timeout: int,
    ) -> Optional[SqsMessage]:
        """
        Long-poll and return a single message or None.

        Args:
            queue_url: SQS queue URL
            wait_seconds: Long polling wait time (0-20 seconds)
            visibility_timeout: How long the message should be hidden from other consumers

        Returns:
            SqsMessage or None if no messages available
        """
        try:
            response = self.client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=wait_seconds,
                VisibilityTimeout=visibility_timeout,
            )
        except ClientError as e:
            raise RuntimeError(f"Failed to receive message from SQS: {e}") from e

        messages = response.get('Messages', [])
        if not messages:
            return None

        msg = messages[0]
        return SqsMessage(
            message_id=msg['MessageId'],
            receipt_handle=msg['ReceiptHandle'],
            body=msg.get('Body', ''),
        )

    def delete(self, queue_url: str, receipt_handle: str) -> None:
        """
        Delete a message from the queue.

        Args:
            queue_url: SQS queue URL
            receipt_handle: Receipt handle from received message
        """
        try:
            self.client.delete_message(
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle
            )
        except ClientError as e:
            raise RuntimeError(f"Failed to delete SQS message: {e}") from e

    def send_batch(self, queue_url: str, bodies: Iterable[str]) -> int:
        """
        Send message bodies using batch calls (up to 10 messages per call).

        Args:
            queue_url: SQS queue URL
            bodies: Message bodies (typically JSON strings)

        Returns:
            Number of messages sent

        Raises:
            RuntimeError: If the call fails or any entry of a batch is rejected
        """
        bodies = list(bodies)
        sent = 0
        for start in range(0, len(bodies), MAX_BATCH_SIZE):
            chunk = bodies[start:start + MAX_BATCH_SIZE]
            entries = [
                {'Id': f"m{i}-{uuid.uuid4().hex[:8]}", 'MessageBody': body}
                for i, body in enumerate(chunk)
            ]
            try:
                response = self.client.send_message_batch(QueueUrl=queue_url, Entries=entries)
            except ClientError as e:
                raise RuntimeError(f"Failed to send SQS message batch: {e}") from e

            failed = response.get('Failed', [])
            if failed:
                reasons = ", ".join(f"{f.get('Code')}: {f.get('Message', '')}" for f in failed)
                raise RuntimeError(f"{len(failed)} of {len(entries)} SQS messages rejected ({reasons})")
            sent += len(response.get('Successful', entries))
        return sent
