"""
Comic schemas

Normalized views of Marvel API payloads plus the query-time filter models.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

MARVEL_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
IMAGE_NOT_AVAILABLE = "image_not_available"

# Month index meaning "no month filter"
ALL_MONTHS = -1


def parse_marvel_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Marvel date string ("2019-03-06T00:00:00-0500").

    Marvel uses "-0001-11-30T00:00:00-0500" as a placeholder for unknown
    dates; that and anything else unparseable becomes None.
    """
    if not value:
        return None
    try:
        return datetime.strptime(value, MARVEL_DATE_FORMAT)
    except ValueError:
        return None


class SortKey(str, Enum):
    TITLE = "title"
    PUBLISH_DATE = "publishDate"
    UNLIMITED_DATE = "unlimitedDate"
    BEST_MATCH = "bestMatch"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Comic(BaseModel):
    """A single comic issue. Immutable once fetched."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    series: str = ""
    creators: Tuple[str, ...] = ()
    events: Tuple[str, ...] = ()
    publish_date: Optional[datetime] = None
    unlimited_date: Optional[datetime] = None
    has_image: bool = False

    issue_number: Optional[float] = None
    image_url: Optional[str] = None

    @property
    def publish_month(self) -> Optional[int]:
        """0-based month (0 = January) of the publish date."""
        if self.publish_date is None:
            return None
        return self.publish_date.month - 1

    @classmethod
    def from_marvel(cls, raw: Dict[str, Any]) -> "Comic":
        """Build a Comic from a raw entry of the Marvel `data.results` list."""
        dates = {d.get("type"): d.get("date") for d in raw.get("dates") or []}

        thumbnail = raw.get("thumbnail") or {}
        path = thumbnail.get("path") or ""
        has_image = bool(path) and IMAGE_NOT_AVAILABLE not in path
        image_url = f"{path}.{thumbnail.get('extension', 'jpg')}" if has_image else None

        return cls(
            id=str(raw["id"]),
            title=raw.get("title") or "",
            series=(raw.get("series") or {}).get("name") or "",
            creators=tuple(
                c["name"] for c in (raw.get("creators") or {}).get("items") or [] if c.get("name")
            ),
            events=tuple(
                e["name"] for e in (raw.get("events") or {}).get("items") or [] if e.get("name")
            ),
            publish_date=parse_marvel_date(dates.get("onsaleDate")),
            unlimited_date=parse_marvel_date(dates.get("unlimitedDate")),
            has_image=has_image,
            issue_number=raw.get("issueNumber"),
            image_url=image_url,
        )


class ComicPage(BaseModel):
    """
    One fetched batch of comics for a (year, page) pair.

    `code` is the upstream status; anything but 200 means "no data" and the
    page must not be cached.
    """
    code: int
    status: Optional[str] = None
    offset: int = 0
    limit: int = 0
    total: int = 0
    count: int = 0
    results: List[Comic] = Field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.code == 200

    @classmethod
    def from_api(cls, payload: Dict[str, Any], http_status: int = 200) -> "ComicPage":
        """
        Parse the Marvel response envelope.

        Marvel returns string codes for some auth failures
        ({"code": "InvalidCredentials", ...}); those fall back to the HTTP status.
        Raises KeyError/TypeError/ValueError/ValidationError on a malformed body.
        """
        code = payload.get("code")
        if isinstance(code, bool) or not isinstance(code, int):
            code = http_status
        status = payload.get("status") or payload.get("message")

        if code != 200:
            return cls(code=code, status=status)

        data = payload["data"]
        results = [Comic.from_marvel(raw) for raw in data.get("results") or []]
        return cls(
            code=code,
            status=status,
            offset=data.get("offset", 0),
            limit=data.get("limit", 0),
            total=data["total"],
            count=data.get("count", len(results)),
            results=results,
        )


class FilterOptions(BaseModel):
    """The full universe of filterable values in a record set."""
    model_config = ConfigDict(frozen=True)

    series: FrozenSet[str] = frozenset()
    creators: FrozenSet[str] = frozenset()
    events: FrozenSet[str] = frozenset()

    @classmethod
    def from_comics(cls, comics: Iterable[Comic]) -> "FilterOptions":
        series, creators, events = set(), set(), set()
        for comic in comics:
            series.add(comic.series)
            creators.update(comic.creators)
            events.update(comic.events)
        return cls(
            series=frozenset(series),
            creators=frozenset(creators),
            events=frozenset(events),
        )


class FilterSelection(BaseModel):
    """Currently enabled filter values. Query-time only, never persisted."""
    model_config = ConfigDict(frozen=True)

    series: FrozenSet[str] = frozenset()
    creators: FrozenSet[str] = frozenset()
    events: FrozenSet[str] = frozenset()
    month: int = Field(ALL_MONTHS, ge=-1, le=11)

    @classmethod
    def select_all(cls, options: FilterOptions, month: int = ALL_MONTHS) -> "FilterSelection":
        """Everything switched on: equivalent to no category filter."""
        return cls(
            series=options.series,
            creators=options.creators,
            events=options.events,
            month=month,
        )
