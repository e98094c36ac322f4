"""Film entity extraction from the listing API response.

The listing endpoint returns ``{"output": {"mv": [...]}}`` where each
movie record carries a ``filmName`` and an optional ``films`` list of
per-format sub-records, each with its own ``filmName``.
"""

from typing import Any, Iterator


def get_movies(response: Any) -> list[dict]:
    """Return the movie records, or an empty list for any other shape."""
    if not isinstance(response, dict):
        return []
    output = response.get("output")
    if not isinstance(output, dict):
        return []
    movies = output.get("mv")
    if not isinstance(movies, list):
        return []
    return [m for m in movies if isinstance(m, dict)]


def get_sub_films(movie: dict) -> list[dict]:
    films = movie.get("films")
    if not isinstance(films, list):
        return []
    return [f for f in films if isinstance(f, dict)]


def iter_film_records(movies: list[dict]) -> Iterator[tuple[dict, dict | None]]:
    """Yield (movie, sub_film) pairs; sub_film is None for the movie itself."""
    for movie in movies:
        yield movie, None
        for film in get_sub_films(movie):
            yield movie, film


def get_film_names(movies: list[dict]) -> list[str]:
    """Collect unique film names (movie level and nested), first-seen order."""
    names: dict[str, None] = {}
    for movie, film in iter_film_records(movies):
        record = film if film is not None else movie
        name = record.get("filmName")
        if isinstance(name, str) and name:
            names.setdefault(name, None)
    return list(names)
