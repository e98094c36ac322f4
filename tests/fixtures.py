"""Shared listing payloads for tests."""


def listing_response(*movies: dict, result: str = "success") -> dict:
    return {"result": result, "status": 200, "output": {"mv": list(movies)}}


SPIDER_MOVIE = {
    "filmName": "Spider-Man: No Way Home",
    "releaseDate": "Nov 14, 2025",
    "films": [
        {"id": "F1", "filmName": "Spider-Man: No Way Home (IMAX 3D)"},
        {"id": "F2", "filmName": "Spider-Man: No Way Home (Tamil)", "releaseDate": "2026-12-01"},
    ],
}

OTHER_MOVIE = {
    "filmName": "The Quiet Pond",
    "films": [{"id": "Q1", "filmName": "The Quiet Pond"}],
}


def theatre_response(*names_and_shows: tuple[str, int], city: str = "Chennai") -> dict:
    return {
        "result": "success",
        "output": {
            "cinemaSessions": [
                {
                    "cinema": {
                        "name": name,
                        "theatreId": f"T{i}",
                        "cityName": city,
                        "address": f"{i} Main Road",
                    },
                    "experienceSessions": [{"shows": [{}] * shows}],
                }
                for i, (name, shows) in enumerate(names_and_shows, 1)
            ]
        },
    }
