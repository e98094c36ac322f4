"""Theatre listing lookups per film identifier.

Each resolved film identifier gets one secondary request for the date
picked by ``choose_lookup_date``. Failures are isolated per identifier.
Two response shapes are understood:

  {"output": {"cinemaSessions": [{"cinema": {...}, "experienceSessions": [{"shows": [...]}]}]}}
  {"output": {"cinemas": [{"name": ..., "showCount": ...}]}}
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from spidertracker.dates import LookupDate, choose_lookup_date
from spidertracker.films import FilmInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Theatre:
    name: str
    theatre_id: str = ""
    show_count: int = 0
    city_name: str = ""
    address: str = ""


@dataclass
class FilmLookup:
    """Outcome of the theatre lookup for one film identifier."""

    film: FilmInfo
    lookup_date: LookupDate
    theatres: list[Theatre] = field(default_factory=list)
    error: str = ""  # non-empty if the lookup failed


@dataclass
class TheatreCollection:
    lookups: list[FilmLookup] = field(default_factory=list)
    theatres: list[Theatre] = field(default_factory=list)  # unique by name


def _first(record: dict, *keys: str, default: Any = "") -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return default


def _count_shows(entry: dict, cinema: dict) -> int:
    sessions = entry.get("experienceSessions")
    if isinstance(sessions, list):
        total = 0
        for session in sessions:
            shows = session.get("shows") if isinstance(session, dict) else None
            if isinstance(shows, list):
                total += len(shows)
        return total

    raw = _first(cinema, "showCount", "shows", "sessions", default=0)
    if isinstance(raw, list):
        return len(raw)
    try:
        return max(int(raw), 0)
    except (TypeError, ValueError):
        return 0


def _to_theatre(entry: dict) -> Theatre | None:
    cinema = entry.get("cinema") if isinstance(entry.get("cinema"), dict) else entry
    name = _first(cinema, "name", "theatreName", "cinemaName")
    if not isinstance(name, str) or not name.strip():
        return None
    return Theatre(
        name=name.strip(),
        theatre_id=str(_first(cinema, "theatreId", "cinemaId", "id")),
        show_count=_count_shows(entry, cinema),
        city_name=str(_first(cinema, "cityName", "city")),
        address=str(_first(cinema, "address", "address1")),
    )


def parse_theatres(response: Any) -> list[Theatre]:
    """Parse a theatre listing response; empty list on any unexpected shape."""
    if not isinstance(response, dict):
        return []
    output = response.get("output")
    if not isinstance(output, dict):
        return []

    entries = output.get("cinemaSessions")
    if not isinstance(entries, list):
        entries = output.get("cinemas")
    if not isinstance(entries, list):
        return []

    theatres = []
    for entry in entries:
        if isinstance(entry, dict):
            theatre = _to_theatre(entry)
            if theatre is not None:
                theatres.append(theatre)
    return theatres


def dedupe_by_name(theatres: list[Theatre]) -> list[Theatre]:
    """Unique theatres by name; the last occurrence wins."""
    by_name: dict[str, Theatre] = {}
    for theatre in theatres:
        by_name.pop(theatre.name, None)
        by_name[theatre.name] = theatre
    return list(by_name.values())


async def _lookup(client, info: FilmInfo, today: date) -> FilmLookup:
    lookup_date = choose_lookup_date(info.release_date, today)
    lookup = FilmLookup(film=info, lookup_date=lookup_date)
    logger.info(
        "Theatre lookup film=%s date=%s (%s)",
        info.code,
        lookup_date.value,
        lookup_date.source,
    )

    try:
        result = await asyncio.to_thread(
            client.fetch_theatre_listing, info.code, lookup_date.value
        )
    except Exception as exc:
        logger.exception("Theatre lookup crashed for film %s", info.code)
        lookup.error = str(exc)
        return lookup

    if not result.success:
        logger.warning(
            "Theatre lookup failed for film %s: status=%s error=%s",
            info.code,
            result.status,
            result.error,
        )
        lookup.error = result.error or f"HTTP {result.status}"
        return lookup

    lookup.theatres = parse_theatres(result.body)
    logger.info(
        "Theatre lookup film=%s returned %d theatres", info.code, len(lookup.theatres)
    )
    return lookup


async def collect_theatres(client, film_infos: list[FilmInfo], today: date) -> TheatreCollection:
    """Look up theatres for every film identifier and merge them by name."""
    lookups = await asyncio.gather(*(_lookup(client, info, today) for info in film_infos))

    merged: list[Theatre] = []
    for lookup in lookups:
        merged.extend(lookup.theatres)

    return TheatreCollection(lookups=list(lookups), theatres=dedupe_by_name(merged))
