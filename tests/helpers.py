"""Shared builders and fakes for Comic Catalog tests."""
from typing import Any, Callable, Dict, List, Optional

import httpx

from comic_catalog.core.http_client import (
    CircuitPolicy,
    ResilientHTTPClient,
    RetryPolicy,
    ThrottlePolicy,
)
from comic_catalog.schemas.comic import Comic, ComicPage


def marvel_comic(
    comic_id: int,
    title: str = "Amazing Spider-Man (1963) #1",
    series: str = "Amazing Spider-Man (1963 - 1998)",
    onsale: str = "1963-03-10T00:00:00-0500",
    unlimited: str = "2007-11-13T00:00:00-0500",
    creators: Optional[List[str]] = None,
    events: Optional[List[str]] = None,
    image: bool = True,
) -> Dict[str, Any]:
    """A raw comic shaped like Marvel's `data.results` entries."""
    path = (
        f"http://i.annihil.us/u/prod/marvel/i/mg/comic/{comic_id}"
        if image
        else "http://i.annihil.us/u/prod/marvel/i/mg/b/40/image_not_available"
    )
    return {
        "id": comic_id,
        "title": title,
        "issueNumber": 1,
        "series": {"name": series},
        "dates": [
            {"type": "onsaleDate", "date": onsale},
            {"type": "focDate", "date": "-0001-11-30T00:00:00-0500"},
            {"type": "unlimitedDate", "date": unlimited},
        ],
        "thumbnail": {"path": path, "extension": "jpg"},
        "creators": {"items": [{"name": n, "role": "writer"} for n in creators or []]},
        "events": {"items": [{"name": n} for n in events or []]},
    }


def marvel_envelope(
    results: List[Dict[str, Any]], total: Optional[int] = None, offset: int = 0, limit: int = 100
) -> Dict[str, Any]:
    return {
        "code": 200,
        "status": "Ok",
        "data": {
            "offset": offset,
            "limit": limit,
            "total": len(results) if total is None else total,
            "count": len(results),
            "results": results,
        },
    }


def make_test_client(handler: Callable[[httpx.Request], httpx.Response], **retry) -> ResilientHTTPClient:
    """ResilientHTTPClient with no throttling, routed through an httpx MockTransport."""
    client = ResilientHTTPClient(
        throttle=ThrottlePolicy(min_interval=0, per_second=1000),
        retry=RetryPolicy(base_delay=0, max_delay=0, jitter=0, **retry),
        circuit=CircuitPolicy(open_after=3, cooldown=60.0),
        timeout=5.0,
    )
    client._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        timeout=client.timeout,
        headers=client.headers,
    )
    return client


class FakeRecordStore:
    """In-memory RecordStore that records every call."""

    def __init__(
        self, random_for_years: Optional[List[Comic]] = None, random_any: Optional[List[Comic]] = None
    ):
        self.values: Dict[str, str] = {}
        self.pages: Dict[tuple, ComicPage] = {}
        self.add_calls: List[tuple] = []
        self.set_calls: List[tuple] = []
        self.sample_calls: List[tuple] = []
        self.random_for_years = random_for_years or []
        self.random_any = random_any or []

    async def add_comics(self, year, page, comic_page, comic_ids_with_images):
        self.add_calls.append((year, page, comic_page, set(comic_ids_with_images)))
        self.pages[(year, page)] = comic_page
        return True

    async def get_comics(self, year, page):
        return self.pages.get((year, page))

    async def get_cached_pages(self, year):
        return {p: page for (y, p), page in self.pages.items() if y == year}

    async def get(self, key, parse):
        raw = self.values.get(key)
        return None if raw is None else parse(raw)

    async def set(self, key, value):
        self.set_calls.append((key, value))
        self.values[key] = str(value)
        return True

    async def get_random_comics_for_years(self, start_year, end_year, seed):
        self.sample_calls.append((start_year, end_year, seed))
        return list(self.random_for_years)

    async def get_random_comics(self):
        return list(self.random_any)


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for RedisRecordStore."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.sets: Dict[str, set] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.expiries: Dict[str, int] = {}

    async def get(self, key):
        return self.strings.get(key)

    async def set(self, key, value):
        self.strings[key] = str(value)
        return True

    async def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(str(m) for m in members)
        return len(members)

    async def srem(self, key, *members):
        self.sets.setdefault(key, set()).difference_update(str(m) for m in members)
        return len(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def srandmember(self, key, count):
        return sorted(self.sets.get(key, set()))[:count]

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def hmget(self, key, fields):
        table = self.hashes.get(key, {})
        return [table.get(f) for f in fields]

    async def mget(self, keys):
        return [self.strings.get(k) for k in keys]

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Queues commands like a redis pipeline and runs them on execute()."""

    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        results = []
        for name, args, kwargs in self.commands:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.commands = []
        return results
