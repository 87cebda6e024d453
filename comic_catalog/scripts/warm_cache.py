"""
Warm the comic cache for one or more years.

Walks every 100-comic page of each year through MarvelApi so later
requests are served from Redis.

Usage:
    python -m comic_catalog.scripts.warm_cache 1985
    python -m comic_catalog.scripts.warm_cache 1980 --end-year 1989 --ignore-cache
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from comic_catalog.core.config import settings
from comic_catalog.core.exceptions import UpstreamError
from comic_catalog.core.redis_client import close_redis
from comic_catalog.services.marvel_api import TOTAL_UNAVAILABLE, MarvelApi, pages_for_total
from comic_catalog.services.record_store import RedisRecordStore

logger = logging.getLogger(__name__)


@dataclass
class WarmResult:
    year: int
    total: int
    pages: int = 0
    fetched: int = 0
    from_cache: int = 0
    failed: int = 0


async def warm_year(api: MarvelApi, year: int, ignore_cache: bool = False) -> WarmResult:
    total = await api.get_total_comics(year, bypass_cache=ignore_cache)
    result = WarmResult(year=year, total=total)
    if total == TOTAL_UNAVAILABLE:
        logger.warning(f"Skipping {year}: total unavailable")
        return result

    result.pages = pages_for_total(total)
    cache = {} if ignore_cache else await api.store.get_cached_pages(year)
    ids_with_images = {
        comic.id for page in cache.values() for comic in page.results if comic.has_image
    }

    for index in range(result.pages):
        if index in cache:
            result.from_cache += 1
            continue
        page = await api.get_comics(year, index, cache, ids_with_images)
        if page.is_success:
            result.fetched += 1
            ids_with_images.update(c.id for c in page.results if c.has_image)
        else:
            result.failed += 1

    return result


async def run(start_year: int, end_year: int, ignore_cache: bool) -> int:
    store = RedisRecordStore()
    failures = 0
    try:
        async with MarvelApi(store, ignore_cache=ignore_cache) as api:
            for year in range(start_year, end_year + 1):
                try:
                    result = await warm_year(api, year, ignore_cache=ignore_cache)
                except UpstreamError as e:
                    logger.error(f"{year}: {e.message} {e.details}")
                    failures += 1
                    continue
                if result.total == TOTAL_UNAVAILABLE or result.failed:
                    failures += 1
                print(
                    f"{year}: total={result.total} pages={result.pages} "
                    f"fetched={result.fetched} cached={result.from_cache} failed={result.failed}"
                )
    finally:
        await close_redis()
    return 1 if failures else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Warm the comic cache for a range of years")
    parser.add_argument("year", type=int, help="First year to warm")
    parser.add_argument("--end-year", type=int, default=None, help="Last year (inclusive)")
    parser.add_argument(
        "--ignore-cache",
        action="store_true",
        help="Refetch totals and pages even if they are cached",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    end_year = args.end_year if args.end_year is not None else args.year
    if end_year < args.year:
        parser.error("--end-year must not be before year")

    return asyncio.run(run(args.year, end_year, args.ignore_cache))


if __name__ == "__main__":
    sys.exit(main())
