"""
Record Store

The key-value cache behind MarvelApi. MarvelApi only depends on the
RecordStore protocol; RedisRecordStore is the production implementation.

Redis key layout:
    year:{year}:total         -> int, authoritative comic count for the year
    year:{year}:page:{page}   -> ComicPage JSON
    year:{year}:pages         -> set of cached page indices
    year:{year}:images        -> set of comic ids that have cover images
    comics                    -> hash of comic id -> Comic JSON
    comics:images             -> set of all comic ids that have cover images

Redis failures degrade gracefully (logged, treated as a cache miss) so
the catalog keeps working straight from the upstream API.
"""
import logging
import random
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Set, TypeVar

from pydantic import ValidationError
from redis.exceptions import RedisError

from comic_catalog.core.config import settings
from comic_catalog.core.exceptions import RecordStoreError
from comic_catalog.core.redis_client import get_redis
from comic_catalog.schemas.comic import Comic, ComicPage

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMICS_KEY = "comics"
COMICS_WITH_IMAGES_KEY = "comics:images"


def year_total_key(year: int) -> str:
    return f"year:{year}:total"


def page_key(year: int, page: int) -> str:
    return f"year:{year}:page:{page}"


def pages_key(year: int) -> str:
    return f"year:{year}:pages"


def year_images_key(year: int) -> str:
    return f"year:{year}:images"


class RecordStore(Protocol):
    """Capabilities MarvelApi needs from the cache."""

    async def add_comics(
        self, year: int, page: int, comic_page: ComicPage, comic_ids_with_images: Set[str]
    ) -> bool: ...

    async def get_comics(self, year: int, page: int) -> Optional[ComicPage]: ...

    async def get_cached_pages(self, year: int) -> Dict[int, ComicPage]: ...

    async def get(self, key: str, parse: Callable[[str], T]) -> Optional[T]: ...

    async def set(self, key: str, value: Any) -> bool: ...

    async def get_random_comics_for_years(
        self, start_year: int, end_year: int, seed: int
    ) -> List[Comic]: ...

    async def get_random_comics(self) -> List[Comic]: ...


class RedisRecordStore:
    """
    RecordStore backed by Redis.

    Args:
        client: redis.asyncio client. When None, the shared client from
            get_redis() is used (and may itself be None if REDIS_URL is unset).
        ttl_seconds: expiry for page/total keys; 0 disables expiry
        sample_size: how many comics a random sample draws
    """

    def __init__(
        self, client=None, ttl_seconds: Optional[int] = None, sample_size: Optional[int] = None
    ):
        self._client = client
        self.ttl_seconds = settings.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.sample_size = settings.RANDOM_SAMPLE_SIZE if sample_size is None else sample_size

    async def _redis(self):
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def _expire(self, client, key: str) -> None:
        if self.ttl_seconds:
            await client.expire(key, self.ttl_seconds)

    # ----- Pages -----

    async def add_comics(
        self,
        year: int,
        page: int,
        comic_page: ComicPage,
        comic_ids_with_images: Set[str],
    ) -> bool:
        """
        Cache a successful page and update the image pools.

        comic_ids_with_images is the caller's view of which comics already
        have images: comics gaining an image are added to the pools, comics
        that lost theirs are removed.
        """
        if page < 0:
            raise RecordStoreError(f"Invalid page index {page}", details={"year": year, "page": page})
        if not comic_page.is_success:
            logger.debug(f"[STORE] Refusing to cache {year} page {page} with code {comic_page.code}")
            return False

        client = await self._redis()
        if not client:
            return False

        gained = [c.id for c in comic_page.results if c.has_image and c.id not in comic_ids_with_images]
        lost = [c.id for c in comic_page.results if not c.has_image and c.id in comic_ids_with_images]

        try:
            pipe = client.pipeline()
            key = page_key(year, page)
            pipe.set(key, comic_page.model_dump_json())
            pipe.sadd(pages_key(year), page)
            if self.ttl_seconds:
                # the index set outlives its oldest pages; reads skip missing ones
                pipe.expire(key, self.ttl_seconds)
                pipe.expire(pages_key(year), self.ttl_seconds)
            if comic_page.results:
                pipe.hset(
                    COMICS_KEY,
                    mapping={c.id: c.model_dump_json() for c in comic_page.results},
                )
            if gained:
                pipe.sadd(year_images_key(year), *gained)
                pipe.sadd(COMICS_WITH_IMAGES_KEY, *gained)
            if lost:
                pipe.srem(year_images_key(year), *lost)
                pipe.srem(COMICS_WITH_IMAGES_KEY, *lost)
            await pipe.execute()
        except RedisError as e:
            logger.warning(f"[STORE] Failed to cache {year} page {page}: {e}")
            return False

        logger.debug(
            f"[STORE] Cached {year} page {page} ({len(comic_page.results)} comics, "
            f"+{len(gained)}/-{len(lost)} images)"
        )
        return True

    async def get_comics(self, year: int, page: int) -> Optional[ComicPage]:
        client = await self._redis()
        if not client:
            return None
        try:
            data = await client.get(page_key(year, page))
        except RedisError as e:
            logger.warning(f"[STORE] Read failed for {year} page {page}: {e}")
            return None
        if data is None:
            return None
        try:
            return ComicPage.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"[STORE] Discarding corrupt cache entry for {year} page {page}: {e}")
            return None

    async def get_cached_pages(self, year: int) -> Dict[int, ComicPage]:
        """All cached pages for a year, keyed by page index. Expired or corrupt pages are skipped."""
        client = await self._redis()
        if not client:
            return {}
        try:
            indices = sorted(int(p) for p in await client.smembers(pages_key(year)))
            if not indices:
                return {}
            raw_pages = await client.mget([page_key(year, index) for index in indices])
        except RedisError as e:
            logger.warning(f"[STORE] Could not list cached pages for {year}: {e}")
            return {}

        pages: Dict[int, ComicPage] = {}
        for index, data in zip(indices, raw_pages):
            if data is None:
                continue
            try:
                pages[index] = ComicPage.model_validate_json(data)
            except ValidationError as e:
                logger.warning(f"[STORE] Discarding corrupt cache entry for {year} page {index}: {e}")
        return pages

    # ----- Generic values -----

    async def get(self, key: str, parse: Callable[[str], T]) -> Optional[T]:
        client = await self._redis()
        if not client:
            return None
        try:
            raw = await client.get(key)
        except RedisError as e:
            logger.warning(f"[STORE] Read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return parse(raw)
        except (TypeError, ValueError) as e:
            raise RecordStoreError(f"Unparseable value at {key}", details={"raw": raw}) from e

    async def set(self, key: str, value: Any) -> bool:
        client = await self._redis()
        if not client:
            return False
        try:
            await client.set(key, value)
            await self._expire(client, key)
        except RedisError as e:
            logger.warning(f"[STORE] Write failed for {key}: {e}")
            return False
        return True

    # ----- Random sampling -----

    async def _load_comics(self, client, ids: Iterable[str]) -> List[Comic]:
        ids = list(ids)
        if not ids:
            return []
        comics = []
        for comic_id, data in zip(ids, await client.hmget(COMICS_KEY, ids)):
            if data is None:
                logger.debug(f"[STORE] Image pool references missing comic {comic_id}")
                continue
            try:
                comics.append(Comic.model_validate_json(data))
            except ValidationError as e:
                logger.warning(f"[STORE] Skipping corrupt comic {comic_id}: {e}")
        return comics

    async def get_random_comics_for_years(
        self, start_year: int, end_year: int, seed: int
    ) -> List[Comic]:
        """
        Draw sample_size comics with images from [start_year, end_year].

        Each draw picks a year uniformly (among years with cached images), then
        a comic from that year, with replacement, so the result may contain
        duplicates. The same seed and cache contents always give the same sample.
        """
        client = await self._redis()
        if not client:
            return []

        rng = random.Random(seed)
        try:
            pools: Dict[int, List[str]] = {}
            for year in range(start_year, end_year + 1):
                members = await client.smembers(year_images_key(year))
                if members:
                    pools[year] = sorted(members)
            if not pools:
                return []

            years = sorted(pools)
            picks = [rng.choice(pools[rng.choice(years)]) for _ in range(self.sample_size)]
            return await self._load_comics(client, picks)
        except RedisError as e:
            logger.warning(f"[STORE] Random sample for {start_year}-{end_year} failed: {e}")
            return []

    async def get_random_comics(self) -> List[Comic]:
        """Distinct random comics with images from any year."""
        client = await self._redis()
        if not client:
            return []
        try:
            ids = await client.srandmember(COMICS_WITH_IMAGES_KEY, self.sample_size)
            return await self._load_comics(client, ids or [])
        except RedisError as e:
            logger.warning(f"[STORE] Random sample failed: {e}")
            return []
