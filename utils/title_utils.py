"""Anime title normalization and matching helpers.

Consolidates the slug and token logic shared by the search stage and the
extractor plugins, so direct URL construction and candidate ranking agree
on how a title is written.
"""

import re

from fuzzywuzzy import fuzz


def title_slug(title: str) -> str:
    """Build the URL slug most sites use for an anime title.

    Examples:
        "Jujutsu Kaisen" -> "jujutsu-kaisen"
        "Re:Zero - Starting Life" -> "rezero-starting-life"
        "Dr. STONE  (2019)" -> "dr-stone-2019"
    """
    slug = title.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def significant_words(text: str, min_length: int = 3) -> list[str]:
    """Lowercase words of at least ``min_length`` characters."""
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [word for word in words if len(word) >= min_length]


def token_overlap(query: str, candidate: str) -> int:
    """Count query words that overlap a candidate's words.

    A query word overlaps when it contains, or is contained in, a word of
    the candidate. Words shorter than three characters are ignored.

    Examples:
        token_overlap("one piece", "One Piece Episode 1000") -> 2
        token_overlap("naruto", "Naruto Shippuden") -> 1
        token_overlap("bleach", "Dandadan") -> 0
    """
    candidate_words = significant_words(candidate)
    return sum(
        1
        for word in significant_words(query)
        if any(word in other or other in word for other in candidate_words)
    )


def similarity(query: str, candidate: str) -> int:
    """Fuzzy token-sort similarity (0-100) used to break overlap ties.

    Extra words in the candidate lower the score, so "Dr. Stone" beats
    "Dr. Stone New World" for the query "stone".
    """
    return fuzz.token_sort_ratio(query.lower(), candidate.lower())
