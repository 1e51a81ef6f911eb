"""Fuzzy name matching for spoken client names.

Transcribed names are often misspelled in ways that still sound right
("Kos" for "Cost", "Jon" for "John"), so plain edit distance is combined with
a Soundex-style code, a consonant skeleton and common speech-to-text
respellings. Scores are in [0, 1]; 1 is an exact match after lower-casing.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar


T = TypeVar("T")

SUGGESTION_THRESHOLD = 0.3
MATCH_THRESHOLD = 0.5
CONFIDENT_THRESHOLD = 0.8

_WHITESPACE = re.compile(r"\s+")
_REPEATED = re.compile(r"(.)\1+")

_SOUNDEX_CODES: dict[str, str] = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}

# Applied in order to both strings before comparing.
_RESPELLINGS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(pattern), replacement)
    for pattern, replacement in (
        (r"ph", "f"),
        (r"ck", "k"),
        (r"gh", ""),
        (r"tion", "shun"),
        (r"sion", "shun"),
        (r"ee", "i"),
        (r"ea", "e"),
        (r"oo", "u"),
        (r"ey", "ee"),
        (r"ie", "ee"),
        (r"y$", "ee"),
        (r"ll", "l"),
        (r"ss", "s"),
        (r"tt", "t"),
        (r"nn", "n"),
        (r"rr", "r"),
        (r"c([ei])", r"s\1"),
        (r"qu", "kw"),
        (r"x", "ks"),
        (r"ough", "o"),
        (r"augh", "af"),
        (r"sch", "sk"),
        (r"tch", "ch"),
        (r"wr", "r"),
        (r"kn", "n"),
        (r"mb$", "m"),
        (r"mn$", "m"),
    )
]


def normalize_name(value: str) -> str:
    """Canonical form used for exact comparisons: lower, trimmed, single spaces."""
    return _WHITESPACE.sub(" ", value.strip().lower())


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def _ratio(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein(a, b) / longest


def _first_sound(char: str) -> str:
    if char in "ckq":
        return "k"
    if char in "sz":
        return "s"
    if char in "gj":
        return "g"
    if char in "fvp":
        return "f"
    return char


def soundex(value: str) -> str:
    """Four-character code; similar-sounding names share a code."""
    s = value.lower()
    if not s:
        return ""
    first = s[0]
    if first in "ckq":
        first = "k"
    elif first in "fvp":
        first = "f"
    elif first in "sz":
        first = "s"
    elif first in "gj":
        first = "j"

    code = first
    last = _SOUNDEX_CODES.get(s[0], "")
    for char in s[1:]:
        if len(code) >= 4:
            break
        if char in "aeiouhwy":
            last = ""
            continue
        digit = _SOUNDEX_CODES.get(char, "")
        if digit and digit != last:
            code += digit
            last = digit
    return (code + "000")[:4]


def consonant_skeleton(value: str) -> str:
    s = value.lower()
    s = re.sub(r"[aeiou]", "", s)
    s = s.replace("c", "k").replace("ph", "f").replace("ck", "k")
    s = s.replace("gh", "").replace("wh", "w").replace("qu", "kw").replace("x", "ks")
    return _REPEATED.sub(r"\1", s)


def _respell(value: str) -> str:
    for pattern, replacement in _RESPELLINGS:
        value = pattern.sub(replacement, value)
    return value


def phonetic_similarity(a: str, b: str) -> float:
    respelled_a, respelled_b = _respell(a), _respell(b)
    if respelled_a == respelled_b:
        return 0.85

    code_a, code_b = soundex(a), soundex(b)
    if code_a == code_b:
        return 0.8
    if code_a[:3] == code_b[:3]:
        return 0.7
    if code_a[:2] == code_b[:2]:
        return 0.6

    skel_a, skel_b = consonant_skeleton(a), consonant_skeleton(b)
    if skel_a == skel_b:
        return 0.75
    if skel_a in skel_b or skel_b in skel_a:
        return 0.65

    return _ratio(respelled_a, respelled_b)


def calculate_similarity(query: str, candidate: str) -> float:
    """Similarity of two names in [0, 1]."""
    a = query.lower().strip()
    b = candidate.lower().strip()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return 0.9

    bonus = 0.1 if _first_sound(a[0]) == _first_sound(b[0]) else 0.0

    word_score = 0.0
    for word_a in a.split():
        for word_b in b.split():
            similarity = _ratio(word_a, word_b)
            if similarity > 0.7:
                word_score = max(word_score, similarity * 0.8)

    best = max(_ratio(a, b), phonetic_similarity(a, b), word_score)
    return min(1.0, best + bonus)


@dataclass(slots=True)
class ScoredMatch(Generic[T]):  # noqa: UP046
    item: T
    similarity: float


def rank_by_similarity(
    items: Iterable[T],
    query: str,
    get_name: Callable[[T], str],
    *,
    min_similarity: float = SUGGESTION_THRESHOLD,
    limit: int = 5,
) -> list[ScoredMatch[T]]:
    """Score ``items`` against ``query``, keep those above the threshold, best first."""
    scored = [
        ScoredMatch(item=item, similarity=calculate_similarity(query, get_name(item)))
        for item in items
    ]
    kept = [s for s in scored if s.similarity >= min_similarity]
    kept.sort(key=lambda s: s.similarity, reverse=True)
    return kept[:limit]
