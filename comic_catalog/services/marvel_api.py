"""
Marvel Comics API Service
https://developer.marvel.com/docs

Cache-through access to the Marvel comics endpoint:
- Pages of 100 comics per year, served from the caller's page cache when
  present, otherwise fetched once and written to the RecordStore
- Per-year totals, cached only when the upstream call succeeds
- Seeded random samples across a range of years

Transport failures raise UpstreamTransportError. A well-formed response
with a non-200 code is returned as data so callers can tell "Marvel has
nothing for this" apart from "Marvel is unreachable". Nothing here retries.
"""
import logging
import math
import time
from typing import Dict, List, Mapping, Optional, Set

import httpx
from pydantic import ValidationError

from comic_catalog.core.config import settings
from comic_catalog.core.exceptions import UpstreamTransportError
from comic_catalog.core.http_client import (
    CircuitOpen,
    HostBlocked,
    ResilientHTTPClient,
    get_marvel_client,
)
from comic_catalog.core.signing import MarvelRequestSigner, RequestSigner
from comic_catalog.core.utils import dedupe, now_millis
from comic_catalog.schemas.comic import Comic, ComicPage
from comic_catalog.services.record_store import RecordStore, year_total_key

logger = logging.getLogger(__name__)

MAX_LIMIT = 100

# Returned by get_total_comics when Marvel answers with a non-200 code
TOTAL_UNAVAILABLE = -1


def pages_for_total(total: int) -> int:
    """Pages of MAX_LIMIT comics needed for `total`; 0 for an unavailable total."""
    if total <= 0:
        return 0
    return math.ceil(total / MAX_LIMIT)


def get_comics_search_params(year: int, offset: int, limit: int) -> Dict[str, str]:
    return {
        "formatType": "comic",
        "noVariants": "true",
        "dateRange": f"{year}-01-01,{year}-12-31",
        "hasDigitalIssue": "true",
        "limit": str(limit),
        "offset": str(offset),
        # Other orderings (e.g. by date) make Marvel skip and repeat comics
        # between pages. Check a year for missing issue numbers before changing.
        "orderBy": "modified",
    }


class MarvelApi:
    """
    Cache-through fetcher for comics by year.

    Args:
        store: cache the pages, totals and random pools live in
        client: HTTP transport; defaults to get_marvel_client()
        signer: request signer; defaults to MarvelRequestSigner() from settings
        ignore_cache: default for bypassing cached year totals
        endpoint: comics endpoint URL; defaults to MARVEL_COMICS_ENDPOINT
    """

    def __init__(
        self,
        store: RecordStore,
        client: Optional[ResilientHTTPClient] = None,
        signer: Optional[RequestSigner] = None,
        ignore_cache: Optional[bool] = None,
        endpoint: Optional[str] = None,
    ):
        self.store = store
        self.client = client or get_marvel_client()
        self.signer = signer or MarvelRequestSigner()
        self.ignore_cache = settings.IGNORE_CACHE if ignore_cache is None else ignore_cache
        self.endpoint = endpoint or settings.MARVEL_COMICS_ENDPOINT

    async def __aenter__(self):
        await self.client.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.client.close()

    async def get_comics(
        self,
        year: int,
        page: int,
        cache: Mapping[int, ComicPage],
        comic_ids_with_images: Set[str],
    ) -> ComicPage:
        """
        Get one page (100 comics) of a year.

        Args:
            year: release year
            page: 0-based page index
            cache: pages the caller already holds for this year, keyed by index
            comic_ids_with_images: ids the caller knows have images; passed to
                the store for its image bookkeeping

        Returns:
            The page, whatever its code. Only code 200 pages are stored.
        """
        logger.info(f"[MARVEL] Retrieving {year} page {page}")

        cached = cache.get(page)
        if cached is not None:
            logger.info(f"[MARVEL] Found {year} page {page} in cache")
            return cached

        start = time.perf_counter()
        result = await self._call_marvel_api(
            get_comics_search_params(year, page * MAX_LIMIT, MAX_LIMIT)
        )
        logger.info(f"[MARVEL] Called Marvel API in {time.perf_counter() - start:.2f}s")

        if result.is_success:
            start = time.perf_counter()
            await self.store.add_comics(year, page, result, comic_ids_with_images)
            logger.info(f"[MARVEL] Updated store in {time.perf_counter() - start:.2f}s")
        else:
            logger.warning(f"[MARVEL] {year} page {page} returned code {result.code}: {result.status}")

        return result

    async def get_total_comics(self, year: int, bypass_cache: Optional[bool] = None) -> int:
        """
        Number of comics Marvel has for a year.

        Returns TOTAL_UNAVAILABLE (-1) when Marvel answers with a non-200 code.
        That value is never cached, so the next call asks Marvel again.
        """
        bypass = self.ignore_cache if bypass_cache is None else bypass_cache
        key = year_total_key(year)

        if not bypass:
            cached = await self.store.get(key, int)
            if cached is not None:
                return cached

        result = await self._call_marvel_api(get_comics_search_params(year, 0, 1))
        if result.is_success:
            await self.store.set(key, result.total)
            return result.total

        logger.warning(f"[MARVEL] Total for {year} unavailable (code {result.code})")
        return TOTAL_UNAVAILABLE

    async def get_page_count(self, year: int, bypass_cache: Optional[bool] = None) -> int:
        """Number of 100-comic pages for a year; 0 when the total is unavailable."""
        total = await self.get_total_comics(year, bypass_cache=bypass_cache)
        return pages_for_total(total)

    async def get_random_comics(
        self, start_year: Optional[int] = None, end_year: Optional[int] = None
    ) -> List[Comic]:
        """
        Random comics with images.

        With both years, the store samples that range with a time-derived seed
        and duplicate ids are dropped (first occurrence wins). Otherwise the
        store's unrestricted sample is returned as is.
        """
        if start_year is not None and end_year is not None:
            if start_year > end_year:
                start_year, end_year = end_year, start_year
            seed = now_millis()
            result = await self.store.get_random_comics_for_years(start_year, end_year, seed)
            return dedupe(result, lambda comic: comic.id)
        return await self.store.get_random_comics()

    async def _call_marvel_api(self, params: Dict[str, str]) -> ComicPage:
        """Sign, send and parse one request. Raises UpstreamTransportError."""
        signed = {**params, **self.signer.sign(str(now_millis()))}

        try:
            response = await self.client.get(self.endpoint, params=signed)
        except (HostBlocked, CircuitOpen) as e:
            raise UpstreamTransportError(str(e), url=self.endpoint) from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(
                f"Marvel API request failed: {type(e).__name__}: {e}",
                url=self.endpoint,
            ) from e

        try:
            return ComicPage.from_api(response.json(), http_status=response.status_code)
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.error(f"[MARVEL] Unparseable response (HTTP {response.status_code}): {e}")
            raise UpstreamTransportError(
                "Marvel API returned an unparseable response",
                url=self.endpoint,
                status_code=response.status_code,
            ) from e
