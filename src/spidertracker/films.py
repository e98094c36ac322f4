"""Resolve matched film names back to film identifiers and release dates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from spidertracker.dates import date_from_parts, normalize_release_date
from spidertracker.listing.extractor import get_sub_films

_CODE_KEYS = ("id", "filmId", "filmCode", "code")
_DATE_KEYS = ("releaseDate", "releasedate", "openingDate")
_PART_KEYS = (
    ("releaseYear", "releaseMonth", "releaseDay"),
    ("year", "month", "day"),
)


@dataclass(frozen=True)
class FilmInfo:
    code: str
    release_date: str | None = None


def _name(record: dict) -> str | None:
    name = record.get("filmName")
    return name if isinstance(name, str) else None


def _film_code(record: dict) -> str | None:
    for key in _CODE_KEYS:
        value = record.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def _explicit_date(record: dict | None):
    if not record:
        return None
    for key in _DATE_KEYS:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _assembled_date(record: dict | None) -> str | None:
    if not record:
        return None
    for year_key, month_key, day_key in _PART_KEYS:
        if year_key in record and month_key in record and day_key in record:
            assembled = date_from_parts(
                record[year_key], record[month_key], record[day_key]
            )
            if assembled:
                return assembled
    return None


def resolve_release_date(movie: dict, film: dict | None = None):
    """Sub-record date, else movie-level date, else year/month/day fields."""
    return (
        _explicit_date(film)
        or _explicit_date(movie)
        or _assembled_date(film)
        or _assembled_date(movie)
    )


def resolve_film_info(movies: list[dict], matched_names: Iterable[str]) -> list[FilmInfo]:
    """Map matched film names to unique identifiers with their best release date.

    A movie whose own name matched contributes all its sub-records; otherwise
    only sub-records whose name matched count. The first non-null date seen
    for an identifier is kept; later nulls never replace it.
    """
    wanted = set(matched_names)
    dates: dict[str, object] = {}

    def record(code: str | None, release) -> None:
        if code is None:
            return
        if isinstance(release, dict):
            release = normalize_release_date(release)
        if code not in dates or (dates[code] is None and release):
            dates[code] = release or None

    for movie in movies:
        movie_matched = _name(movie) in wanted
        sub_films = get_sub_films(movie)

        if not sub_films:
            if movie_matched:
                record(_film_code(movie), resolve_release_date(movie))
            continue

        for film in sub_films:
            if movie_matched or _name(film) in wanted:
                record(_film_code(film), resolve_release_date(movie, film))

    return [
        FilmInfo(code=code, release_date=None if release is None else str(release))
        for code, release in dates.items()
    ]
