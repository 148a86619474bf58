"""Shared fixtures: Fastly log lines and an in-memory marker store."""

from datetime import timedelta
from typing import Dict, Iterator, List, Optional

import pytest

from gemstats.config import ProcessorConfig
from gemstats.core.dedup import DedupGate

# Ten leading fields so that the request path lands at index 10
LOG_PREFIX = (
    '<134>2015-10-12T21:00:00Z cache-sjc3133 fastly-logs[337587]: 1.2.3.4 '
    '"-" "-" Mon, 12-Oct-2015 21:00:00 GET'
)
LOG_SUFFIX = '1405 "Ruby, RubyGems/2.4.5 x86_64-linux Ruby/2.2.3"'


def log_line(path: str, status: str = "200") -> str:
    return f"{LOG_PREFIX} {path} {status} {LOG_SUFFIX}\n"


class FakeMarkerStore:
    """Marker store with expiring keys and a hand-driven clock."""

    def __init__(self):
        self.now = 0.0
        self.values: Dict[str, str] = {}
        self.expires_at: Dict[str, float] = {}
        self.calls: List[tuple] = []

    def _alive(self, key: str) -> bool:
        if key not in self.values:
            return False
        expires = self.expires_at.get(key)
        return expires is None or expires > self.now

    def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool:
        self.calls.append(("set_if_absent", key, value))
        if self._alive(key):
            return False
        self.values[key] = value
        self.expires_at[key] = self.now + ttl.total_seconds()
        return True

    def set(self, key: str, value: str) -> None:
        self.calls.append(("set", key, value))
        self.values[key] = value
        self.expires_at.pop(key, None)

    def expire(self, key: str, ttl: timedelta) -> None:
        self.calls.append(("expire", key, ttl))
        if key in self.values:
            self.expires_at[key] = self.now + ttl.total_seconds()

    def ttl(self, key: str) -> Optional[float]:
        expires = self.expires_at.get(key)
        return None if expires is None else expires - self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta.total_seconds()


class FakeFetcher:
    def __init__(self, objects: Dict[tuple, List[str]]):
        self.objects = objects
        self.fetched: List[tuple] = []

    def fetch(self, bucket: str, key: str) -> Iterator[str]:
        self.fetched.append((bucket, key))
        return iter(self.objects[(bucket, key)])


class FakeCounterStore:
    def __init__(self):
        self.batches: List[list] = []

    def bulk_update(self, entries) -> None:
        self.batches.append(list(entries))


class FakeNameIndex:
    def __init__(self, names: Dict[str, str]):
        self.names = names
        self.lookups: List[str] = []

    def rubygem_name_for(self, version_full_name: str) -> Optional[str]:
        self.lookups.append(version_full_name)
        return self.names.get(version_full_name)


@pytest.fixture
def marker_store() -> FakeMarkerStore:
    return FakeMarkerStore()


@pytest.fixture
def gate(marker_store) -> DedupGate:
    return DedupGate(marker_store)


@pytest.fixture
def enabled_config() -> ProcessorConfig:
    return ProcessorConfig(db_dsn="", aws_region="us-west-2", processing_enabled=True)


@pytest.fixture
def disabled_config() -> ProcessorConfig:
    return ProcessorConfig(db_dsn="", aws_region="us-west-2", processing_enabled=False)
