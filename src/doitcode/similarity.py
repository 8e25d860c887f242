"""Fuzzy text similarity used to tell "edited in place" from "deleted".

The score blends a character-level signal (Levenshtein edit distance) with a
word-level one (Jaccard over word sets), after two cheap shortcuts for exact
and containment matches::

    similarity("Fix the bug", "fix   the  bug")                 # 1.0
    similarity("Refactor parser", "Refactor parser completely")  # >= 0.8
"""

from __future__ import annotations

import re

EDIT_WEIGHT = 0.6
TOKEN_WEIGHT = 0.4
CONTAINMENT_FLOOR = 0.8

_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lower-case, trim and collapse internal whitespace runs to one space."""
    return _WHITESPACE.sub(" ", text.lower().strip())


def levenshtein(a: str, b: str) -> int:
    """Single-character insert/delete/substitute edit distance."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def edit_similarity(a: str, b: str) -> float:
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 0.0
    return (max_len - levenshtein(a, b)) / max_len


def token_similarity(a: str, b: str) -> float:
    """Jaccard index over the sets of space-separated words."""
    words_a = set(a.split(" ")) if a else set()
    words_b = set(b.split(" ")) if b else set()
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def similarity(a: str, b: str) -> float:
    """Confidence in ``[0, 1]`` that *a* and *b* denote the same annotation."""
    clean_a = normalize(a)
    clean_b = normalize(b)

    if clean_a == clean_b:
        return 1.0

    if clean_a in clean_b or clean_b in clean_a:
        shorter, longer = sorted((clean_a, clean_b), key=len)
        return max(CONTAINMENT_FLOOR, len(shorter) / len(longer))

    return (
        EDIT_WEIGHT * edit_similarity(clean_a, clean_b)
        + TOKEN_WEIGHT * token_similarity(clean_a, clean_b)
    )
