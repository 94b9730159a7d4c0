import json
from datetime import date, datetime, timezone
from pathlib import Path

import fakeredis
import pytest

from shared.storage.object_store import LocalObjectStore

FIXED_NOW = datetime(2025, 6, 10, 12, 0, 0, tzinfo=timezone.utc)
FIXED_TODAY = date(2025, 6, 10)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def put(root: Path, key: str, content):
    """Write a blob into a LocalObjectStore root."""
    path = root / key
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, (dict, list)):
        content = json.dumps(content)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)


def jsonl(*records) -> str:
    return "\n".join(json.dumps(r) for r in records) + "\n"


def make_raw(n: int, **overrides) -> dict:
    raw = {
        "article_id": f"article-{n}",
        "original_url": f"https://example.com/news/{n}",
        "title": f"Article {n}",
        "summary": f"Summary {n}",
        "source": "example.com",
        "publish_date": f"2025-06-10T{n % 24:02d}:00:00",
        "language": "en",
        "region": "eu",
        "categories": ["transfer"],
        "content_quality": "high",
        "confidence": 0.9,
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store_root(tmp_path):
    root = tmp_path / "bucket"
    root.mkdir()
    return root


@pytest.fixture
def store(store_root):
    return LocalObjectStore(store_root)


@pytest.fixture
def fake_redis(monkeypatch):
    r = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr("shared.utils.redis_client.redis.from_url", lambda *args, **kw: r)
    from shared.utils import redis_client

    redis_client._redis_clients.clear()
    yield r
    redis_client._redis_clients.clear()
