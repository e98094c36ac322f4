"""Keyword-set matching for film and theatre names.

A keyword set matches a name when every keyword is a case-insensitive
substring of it. Several sets are OR-combined.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable, Sequence

KeywordSet = tuple[str, ...]
KeywordSetConfig = tuple[KeywordSet, ...]


@dataclass(frozen=True)
class FilmMatch:
    """One configured set that matched at least one name."""

    set_index: int
    keyword_set: KeywordSet
    matching_names: frozenset[str]


@dataclass
class CinemaMatchResult:
    matched: bool
    matching_theatres: list = field(default_factory=list)
    matched_sets: list[tuple[int, KeywordSet]] = field(default_factory=list)
    # True when no cinema keywords were configured and everything passed
    unfiltered: bool = False


def parse_keyword_sets(raw: str) -> KeywordSetConfig:
    """Parse a keyword configuration string.

    Accepts a JSON list of lists, a JSON list of strings (a single set),
    or the shorthand ``"a,b;c,d"`` (sets split by ``;``, keywords by ``,``).
    Raises ValueError on anything else.
    """
    text = raw.strip()
    if not text:
        return ()

    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid keyword JSON: {exc}") from exc
        if all(isinstance(item, str) for item in data):
            data = [data]
        sets = []
        for item in data:
            if not isinstance(item, list) or not all(isinstance(k, str) for k in item):
                raise ValueError("keyword sets must be lists of strings")
            keywords = tuple(k.strip() for k in item if k.strip())
            if keywords:
                sets.append(keywords)
        return tuple(sets)

    sets = []
    for chunk in text.split(";"):
        keywords = tuple(k.strip() for k in chunk.split(",") if k.strip())
        if keywords:
            sets.append(keywords)
    return tuple(sets)


def name_matches(keyword_set: Sequence[str], name: str) -> bool:
    if not isinstance(keyword_set, (list, tuple)) or not keyword_set:
        return False
    lowered = str(name).lower()
    return all(str(kw).lower() in lowered for kw in keyword_set)


def match_set(keyword_set: Sequence[str], names: Iterable[str]) -> set[str]:
    """Return the names containing every keyword of the set."""
    if not isinstance(keyword_set, (list, tuple)) or not keyword_set:
        return set()
    return {name for name in names if name_matches(keyword_set, name)}


def match_all_sets(
    keyword_sets: Sequence[Sequence[str]], names: Iterable[str]
) -> list[FilmMatch]:
    """Evaluate every set against the names, in configuration order.

    Sets that match nothing are left out of the result.
    """
    names = list(names)
    matches: list[FilmMatch] = []
    for index, keyword_set in enumerate(keyword_sets or ()):
        found = match_set(keyword_set, names)
        if found:
            matches.append(
                FilmMatch(
                    set_index=index,
                    keyword_set=tuple(keyword_set),
                    matching_names=frozenset(found),
                )
            )
    return matches


def matched_names(matches: Iterable[FilmMatch]) -> set[str]:
    result: set[str] = set()
    for m in matches:
        result |= m.matching_names
    return result


def match_cinemas(keyword_sets: Sequence[Sequence[str]], theatres: Sequence) -> CinemaMatchResult:
    """Filter theatres by the cinema keyword configuration.

    With no cinema keywords every theatre passes. Theatres are expected
    to be unique by name already.
    """
    if not keyword_sets:
        return CinemaMatchResult(
            matched=True, matching_theatres=list(theatres), unfiltered=True
        )

    matching: dict[str, object] = {}
    matched_sets: list[tuple[int, KeywordSet]] = []
    for index, keyword_set in enumerate(keyword_sets):
        hit = False
        for theatre in theatres:
            if name_matches(keyword_set, theatre.name):
                matching[theatre.name] = theatre
                hit = True
        if hit:
            matched_sets.append((index, tuple(keyword_set)))

    return CinemaMatchResult(
        matched=bool(matching),
        matching_theatres=list(matching.values()),
        matched_sets=matched_sets,
    )
