from __future__ import annotations
import gzip
import logging
import zlib
from typing import Any, Iterable, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from gemstats.errors import FetchFailure

logger = logging.getLogger("gemstats.io.s3")

GZIP_SUFFIX = ".gz"

# Storage and decompression errors surfaced as FetchFailure
_FETCH_ERRORS = (ClientError, BotoCoreError, OSError, EOFError, zlib.error)


class LogFetcher:
    """Streams log lines out of S3 objects."""

    def __init__(self, region: Optional[str] = None, client: Any = None):
        """
        Initialize fetcher.

        Args:
            region: AWS region (e.g., "us-west-2"), ignored when client is given
            client: Pre-built boto3 S3 client
        """
        self.client = client or boto3.client("s3", region_name=region)

    def fetch(self, bucket: str, key: str) -> Iterator[str]:
        """
        Lazily yield the lines of s3://bucket/key.

        Objects whose key ends in .gz are gunzipped on the fly. Nothing is
        requested from S3 until the first line is pulled, and the iterator can
        only be consumed once.

        Args:
            bucket: S3 bucket name
            key: Object key (already percent-decoded)

        Raises:
            FetchFailure: On any S3 or decompression error, including errors
                hit while streaming
        """
        try:
            for raw in self._raw_lines(bucket, key):
                yield raw.decode("utf-8", errors="replace")
        except _FETCH_ERRORS as e:
            raise FetchFailure(f"Failed to read s3://{bucket}/{key}: {e}") from e

    def _raw_lines(self, bucket: str, key: str) -> Iterator[bytes]:
        logger.debug(f"Fetching s3://{bucket}/{key}")
        response = self.client.get_object(Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            if key.endswith(GZIP_SUFFIX):
                with gzip.GzipFile(fileobj=body, mode="rb") as stream:
                    yield from stream
            else:
                yield from split_lines(body.iter_chunks())
        finally:
            body.close()


def split_lines(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Re-chunk a byte stream into lines ending in b"\\n", like iterating a file."""
    pending = b""
    for chunk in chunks:
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line + b"\n"
    if pending:
        yield pending
