"""
Search, filter and sort pipeline for a year of comics

Pure functions: the input sequence is never mutated and identical inputs
always give identical output order.

    filter      month / series / creators / events (AND-combined)
    dedupe      one comic per id, first occurrence kept
    search      drop titles that do not match; rank the rest
    sort        rank (best first), then the sort key's comparator
    direction   DESC reverses the whole ordered sequence

A category whose selection is as large as its universe counts as
"not filtering". That is a size comparison, not an emptiness check: an
empty selection with a non-empty universe hides every comic.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from comic_catalog.core.utils import dedupe
from comic_catalog.schemas.comic import (
    ALL_MONTHS,
    Comic,
    FilterOptions,
    FilterSelection,
    SortDirection,
    SortKey,
)
from comic_catalog.services.comic_search import MatchRank, rank_title

logger = logging.getLogger(__name__)

SortKeyFunc = Callable[[Comic], tuple]


def _is_full_selection(selected: FrozenSet[str], universe: FrozenSet[str]) -> bool:
    return len(selected) == len(universe)


def _matches_category(
    values: Iterable[str], selected: FrozenSet[str], universe: FrozenSet[str]
) -> bool:
    if _is_full_selection(selected, universe):
        return True
    return any(value in selected for value in values)


def matches_filters(comic: Comic, options: FilterOptions, selection: FilterSelection) -> bool:
    if selection.month != ALL_MONTHS and comic.publish_month != selection.month:
        return False
    if not _matches_category((comic.series,), selection.series, options.series):
        return False
    if not _matches_category(comic.creators, selection.creators, options.creators):
        return False
    return _matches_category(comic.events, selection.events, options.events)


def filter_comics(
    comics: Iterable[Comic], options: FilterOptions, selection: FilterSelection
) -> List[Comic]:
    return [comic for comic in comics if matches_filters(comic, options, selection)]


def _date_key(value: Optional[datetime]) -> tuple:
    # Comics without a date sort before dated ones
    if value is None:
        return (0,)
    return (1, value)


def _by_title(comic: Comic) -> tuple:
    return (comic.title,)


def _by_publish_date(comic: Comic) -> tuple:
    return _date_key(comic.publish_date)


def _by_unlimited_date(comic: Comic) -> tuple:
    return _date_key(comic.unlimited_date)


def get_comparator(sort_key: SortKey, search_active: bool) -> SortKeyFunc:
    """
    Tie-break key for comics of equal match rank.

    BEST_MATCH has no meaning without a query, so it falls back to
    publish date when no search is active and to title when one is.
    """
    sort_key = SortKey(sort_key)
    if sort_key == SortKey.TITLE:
        return _by_title
    if sort_key == SortKey.PUBLISH_DATE:
        return _by_publish_date
    if sort_key == SortKey.UNLIMITED_DATE:
        return _by_unlimited_date
    return _by_title if search_active else _by_publish_date


def rank_comics(comics: Iterable[Comic], search_text: str) -> List[Tuple[MatchRank, Comic]]:
    """Pair comics with their title rank; with a query, non-matches are dropped."""
    query = (search_text or "").strip()
    if not query:
        return [(MatchRank.NO_MATCH, comic) for comic in comics]

    ranked = []
    for comic in comics:
        rank = rank_title(comic.title, query)
        if rank != MatchRank.NO_MATCH:
            ranked.append((rank, comic))
    return ranked


def sort_comics(
    ranked: Sequence[Tuple[MatchRank, Comic]],
    sort_key: SortKey,
    direction: SortDirection,
    search_active: bool,
) -> List[Comic]:
    tie_break = get_comparator(sort_key, search_active)
    ordered = [
        comic for _, comic in sorted(ranked, key=lambda pair: (-pair[0], tie_break(pair[1])))
    ]
    if SortDirection(direction) == SortDirection.DESC:
        ordered.reverse()
    return ordered


def search_comics(
    comics: Sequence[Comic],
    options: FilterOptions,
    selection: FilterSelection,
    search_text: str = "",
    sort_key: SortKey = SortKey.BEST_MATCH,
    direction: SortDirection = SortDirection.ASC,
) -> List[Comic]:
    """
    Filter, rank and order comics. Returns a new list.

    Records repeated across upstream pages appear once; the first wins.
    """
    search_active = bool((search_text or "").strip())
    filtered = dedupe(filter_comics(comics, options, selection), lambda comic: comic.id)
    ranked = rank_comics(filtered, search_text)
    result = sort_comics(ranked, sort_key, direction, search_active)
    logger.debug(
        f"[SEARCH] {len(comics)} comics -> {len(filtered)} filtered -> {len(result)} results "
        f"(query={search_text!r}, sort={sort_key}, direction={direction})"
    )
    return result


@dataclass(frozen=True)
class ComicQuery:
    """Everything a browse request can ask for. No selection means everything selected."""
    selection: Optional[FilterSelection] = None
    search_text: str = ""
    sort_key: SortKey = SortKey.BEST_MATCH
    direction: SortDirection = SortDirection.ASC


def apply_query(
    comics: Sequence[Comic], query: ComicQuery, options: Optional[FilterOptions] = None
) -> List[Comic]:
    """Run a ComicQuery; the filter universe defaults to the comics themselves."""
    if options is None:
        options = FilterOptions.from_comics(comics)
    selection = query.selection
    if selection is None:
        selection = FilterSelection.select_all(options)
    return search_comics(
        comics,
        options,
        selection,
        search_text=query.search_text,
        sort_key=query.sort_key,
        direction=query.direction,
    )
