"""
Title match ranking for comic search

Ranks a title against a query, case-insensitively, into one of these tiers
(best first):

    FULL              "amazing spider-man"  == "Amazing Spider-Man"
    STARTS_WITH       "amaz"                -> "Amazing Spider-Man"
    WORD_STARTS_WITH  "spider"              -> "Amazing Spider-Man"
    CONTAINS          "zing"                -> "Amazing Spider-Man"
    ACRONYM           "asm"                 -> "Amazing Spider-Man"
    NO_MATCH

Words are separated by whitespace or hyphens.
"""
import re
import unicodedata
from enum import IntEnum
from typing import Optional

_WORD_SPLIT = re.compile(r"[\s\-]+")


class MatchRank(IntEnum):
    NO_MATCH = 0
    ACRONYM = 1
    CONTAINS = 2
    WORD_STARTS_WITH = 3
    STARTS_WITH = 4
    FULL = 5


def normalize(text: Optional[str]) -> str:
    """Lowercase and strip accents so "Café" matches "cafe"."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def get_acronym(text: str) -> str:
    return "".join(word[0] for word in _WORD_SPLIT.split(text) if word)


def _word_starts_with(title: str, query: str) -> bool:
    start = title.find(query)
    while start != -1:
        if start == 0 or title[start - 1].isspace() or title[start - 1] == "-":
            return True
        start = title.find(query, start + 1)
    return False


def rank_title(title: Optional[str], query: Optional[str]) -> MatchRank:
    """
    Rank how well `title` matches `query`.

    An empty query has nothing to rank against and gives NO_MATCH; callers
    decide what "no search" means.
    """
    query = normalize(query).strip()
    title = normalize(title)
    if not query or not title:
        return MatchRank.NO_MATCH

    if title == query:
        return MatchRank.FULL
    if title.startswith(query):
        return MatchRank.STARTS_WITH
    if _word_starts_with(title, query):
        return MatchRank.WORD_STARTS_WITH
    if query in title:
        return MatchRank.CONTAINS
    if query in get_acronym(title):
        return MatchRank.ACRONYM
    return MatchRank.NO_MATCH
