from comic_catalog.schemas.comic import (
    ALL_MONTHS,
    Comic,
    ComicPage,
    FilterOptions,
    FilterSelection,
    SortDirection,
    SortKey,
)
