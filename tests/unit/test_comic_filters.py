"""
Tests for the search / filter / sort pipeline.
"""
from datetime import datetime, timedelta, timezone

import pytest

from comic_catalog.schemas.comic import (
    ALL_MONTHS,
    Comic,
    FilterOptions,
    FilterSelection,
    SortDirection,
    SortKey,
)
from comic_catalog.services.comic_filters import (
    ComicQuery,
    apply_query,
    filter_comics,
    get_comparator,
    search_comics,
)

EST = timezone(timedelta(hours=-5))


def date(year, month, day) -> datetime:
    return datetime(year, month, day, tzinfo=EST)


def ids(comics):
    return [c.id for c in comics]


@pytest.fixture
def spider_comics():
    return [
        Comic(id="1", title="Amazing Spider-Man", series="ASM", publish_date=date(1985, 3, 1)),
        Comic(id="2", title="Astonishing Spider-Man", series="ASM", publish_date=date(1985, 6, 1)),
    ]


@pytest.fixture
def catalog():
    return [
        Comic(
            id="10",
            title="Secret Wars (1984) #1",
            series="Secret Wars",
            creators=("Jim Shooter", "Mike Zeck"),
            events=("Secret Wars",),
            publish_date=date(1984, 5, 10),
            unlimited_date=date(2008, 1, 1),
        ),
        Comic(
            id="11",
            title="X-Men (1963) #200",
            series="Uncanny X-Men",
            creators=("Chris Claremont", "John Romita Jr."),
            publish_date=date(1985, 12, 1),
            unlimited_date=date(2007, 6, 1),
        ),
        Comic(
            id="12",
            title="Thor (1966) #337",
            series="Thor",
            creators=("Walt Simonson",),
            publish_date=date(1983, 11, 1),
            unlimited_date=None,
        ),
        Comic(
            id="13",
            title="Secret Wars II (1985) #1",
            series="Secret Wars II",
            creators=("Jim Shooter", "Al Milgrom"),
            events=("Secret Wars II",),
            publish_date=date(1985, 7, 1),
            unlimited_date=date(2009, 3, 1),
        ),
    ]


def everything(comics):
    options = FilterOptions.from_comics(comics)
    return options, FilterSelection.select_all(options)


class TestScenarios:

    def test_search_ama_best_match(self, spider_comics):
        options, selection = everything(spider_comics)
        result = search_comics(
            spider_comics, options, selection, "ama", SortKey.BEST_MATCH, SortDirection.ASC
        )
        assert ids(result) == ["1"]

    def test_no_search_best_match_desc_uses_publish_date(self, spider_comics):
        options, selection = everything(spider_comics)
        result = search_comics(
            spider_comics, options, selection, "", SortKey.BEST_MATCH, SortDirection.DESC
        )
        assert ids(result) == ["2", "1"]


class TestFilters:

    def test_full_selection_is_identity(self, catalog):
        options, selection = everything(catalog)
        assert ids(filter_comics(catalog, options, selection)) == ids(catalog)

    def test_single_series(self, catalog):
        options = FilterOptions.from_comics(catalog)
        selection = FilterSelection.select_all(options).model_copy(
            update={"series": frozenset({"Thor"})}
        )
        result = filter_comics(catalog, options, selection)

        assert ids(result) == ["12"]
        assert set(ids(result)) <= set(ids(catalog))

    def test_empty_selection_with_values_hides_everything(self, catalog):
        options = FilterOptions.from_comics(catalog)
        selection = FilterSelection.select_all(options).model_copy(
            update={"series": frozenset()}
        )
        assert filter_comics(catalog, options, selection) == []

    def test_empty_universe_counts_as_full(self):
        comics = [Comic(id="1", title="A", series="S")]
        options = FilterOptions.from_comics(comics)
        assert options.creators == frozenset()

        selection = FilterSelection(series=frozenset({"S"}))
        assert ids(filter_comics(comics, options, selection)) == ["1"]

    def test_creator_needs_one_selected(self, catalog):
        options = FilterOptions.from_comics(catalog)
        selection = FilterSelection.select_all(options).model_copy(
            update={"creators": frozenset({"Jim Shooter"})}
        )
        assert ids(filter_comics(catalog, options, selection)) == ["10", "13"]

    def test_event_filter_drops_comics_without_events(self, catalog):
        options = FilterOptions.from_comics(catalog)
        selection = FilterSelection.select_all(options).model_copy(
            update={"events": frozenset({"Secret Wars"})}
        )
        assert ids(filter_comics(catalog, options, selection)) == ["10"]

    def test_month_filter_is_zero_based(self, catalog):
        options = FilterOptions.from_comics(catalog)
        july = FilterSelection.select_all(options, month=6)
        assert ids(filter_comics(catalog, options, july)) == ["13"]

        anytime = FilterSelection.select_all(options, month=ALL_MONTHS)
        assert len(filter_comics(catalog, options, anytime)) == len(catalog)

    def test_filters_combine(self, catalog):
        options = FilterOptions.from_comics(catalog)
        selection = FilterSelection.select_all(options, month=4).model_copy(
            update={"creators": frozenset({"Jim Shooter"})}
        )
        assert ids(filter_comics(catalog, options, selection)) == ["10"]


class TestSorting:

    def test_title_desc_is_exact_reverse_with_duplicate_titles(self):
        comics = [
            Comic(id="1", title="B"),
            Comic(id="2", title="A"),
            Comic(id="3", title="B"),
            Comic(id="4", title="A"),
            Comic(id="5", title="C"),
        ]
        options, selection = everything(comics)
        asc = search_comics(comics, options, selection, "", SortKey.TITLE, SortDirection.ASC)
        desc = search_comics(comics, options, selection, "", SortKey.TITLE, SortDirection.DESC)

        assert ids(asc) == ["2", "4", "1", "3", "5"]
        assert ids(desc) == list(reversed(ids(asc)))

    def test_title_compare_is_case_sensitive(self):
        comics = [Comic(id="1", title="amazing"), Comic(id="2", title="Zap")]
        options, selection = everything(comics)
        result = search_comics(comics, options, selection, "", SortKey.TITLE)
        assert ids(result) == ["2", "1"]

    def test_unlimited_date_missing_first(self, catalog):
        options, selection = everything(catalog)
        result = search_comics(catalog, options, selection, "", SortKey.UNLIMITED_DATE)
        assert ids(result) == ["12", "11", "10", "13"]

    def test_publish_date(self, catalog):
        options, selection = everything(catalog)
        result = search_comics(catalog, options, selection, "", SortKey.PUBLISH_DATE)
        assert ids(result) == ["12", "10", "13", "11"]

    def test_same_rank_ties_use_sort_key(self, catalog):
        options, selection = everything(catalog)
        result = search_comics(catalog, options, selection, "secret wars", SortKey.PUBLISH_DATE)
        assert ids(result) == ["10", "13"]

    def test_rank_beats_sort_key(self):
        comics = [
            Comic(id="1", title="Thor Annual", publish_date=date(1980, 1, 1)),
            Comic(id="2", title="Thor", publish_date=date(1990, 1, 1)),
        ]
        options, selection = everything(comics)
        result = search_comics(comics, options, selection, "thor", SortKey.PUBLISH_DATE)
        assert ids(result) == ["2", "1"]

    def test_best_match_with_search_ties_on_title(self):
        comics = [
            Comic(id="1", title="X-Men Unlimited", publish_date=date(1990, 1, 1)),
            Comic(id="2", title="X-Factor", publish_date=date(1980, 1, 1)),
            Comic(id="3", title="Uncanny X-Men", publish_date=date(1970, 1, 1)),
        ]
        options, selection = everything(comics)
        result = search_comics(comics, options, selection, "x-", SortKey.BEST_MATCH)
        # "X-Factor" and "X-Men Unlimited" start with the query; "Uncanny X-Men" only has a word match
        assert ids(result) == ["2", "1", "3"]

    def test_descending_reverses_ranked_order_too(self):
        comics = [
            Comic(id="1", title="Uncanny X-Men"),
            Comic(id="2", title="X-Men"),
        ]
        options, selection = everything(comics)
        asc = search_comics(comics, options, selection, "x-men", SortKey.BEST_MATCH, SortDirection.ASC)
        desc = search_comics(comics, options, selection, "x-men", SortKey.BEST_MATCH, SortDirection.DESC)
        assert ids(asc) == ["2", "1"]
        assert ids(desc) == ["1", "2"]

    @pytest.mark.parametrize(
        "sort_key, search_active, expected",
        [
            (SortKey.BEST_MATCH, True, "_by_title"),
            (SortKey.BEST_MATCH, False, "_by_publish_date"),
            (SortKey.TITLE, False, "_by_title"),
            (SortKey.PUBLISH_DATE, True, "_by_publish_date"),
            (SortKey.UNLIMITED_DATE, True, "_by_unlimited_date"),
            ("title", False, "_by_title"),
        ],
    )
    def test_comparator_selection(self, sort_key, search_active, expected):
        assert get_comparator(sort_key, search_active).__name__ == expected


class TestEdgeCases:

    def test_empty_input(self):
        options, selection = everything([])
        assert search_comics([], options, selection, "spider") == []
        assert search_comics([], options, selection, "") == []

    def test_unmatched_search(self, catalog):
        options, selection = everything(catalog)
        assert search_comics(catalog, options, selection, "qqqzzz") == []

    def test_whitespace_search_is_no_search(self, catalog):
        options, selection = everything(catalog)
        assert len(search_comics(catalog, options, selection, "   ")) == len(catalog)

    def test_input_not_mutated_and_output_stable(self, catalog):
        before = list(catalog)
        options, selection = everything(catalog)

        first = search_comics(catalog, options, selection, "", SortKey.TITLE, SortDirection.DESC)
        second = search_comics(catalog, options, selection, "", SortKey.TITLE, SortDirection.DESC)

        assert catalog == before
        assert first == second
        assert first is not catalog


class TestApplyQuery:

    def test_default_query_returns_everything_by_publish_date(self, catalog):
        assert ids(apply_query(catalog, ComicQuery())) == ["12", "10", "13", "11"]

    def test_query_with_selection_and_search(self, catalog):
        options = FilterOptions.from_comics(catalog)
        query = ComicQuery(
            selection=FilterSelection.select_all(options).model_copy(
                update={"series": frozenset({"Secret Wars II", "Thor"})}
            ),
            search_text="secret",
            direction=SortDirection.DESC,
        )
        assert ids(apply_query(catalog, query, options)) == ["13"]


class TestDeduplication:

    def test_repeated_ids_appear_once(self):
        comics = [
            Comic(id="1", title="Thor"),
            Comic(id="2", title="Hulk"),
            Comic(id="1", title="Thor"),
        ]
        options, selection = everything(comics)
        result = search_comics(comics, options, selection, "", SortKey.TITLE, SortDirection.ASC)
        assert ids(result) == ["2", "1"]

    def test_first_occurrence_wins(self):
        comics = [
            Comic(id="1", title="Thor (1966) #337"),
            Comic(id="1", title="Thor (1966) #337 (reprint)"),
        ]
        options, selection = everything(comics)
        result = search_comics(comics, options, selection, "thor")
        assert [c.title for c in result] == ["Thor (1966) #337"]
