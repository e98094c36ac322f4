import unittest
from datetime import date

from spidertracker.films import FilmInfo
from spidertracker.listing.http import FetchResult
from spidertracker.theatres import Theatre, collect_theatres, dedupe_by_name, parse_theatres
from tests.fakes import FakeClient
from tests.fixtures import listing_response, theatre_response


class ParseTheatresTests(unittest.TestCase):
    def test_cinema_sessions_shape(self) -> None:
        theatres = parse_theatres(theatre_response(("City Mall - IMAX", 3), ("Lakeside", 0)))
        self.assertEqual(
            theatres[0],
            Theatre(
                name="City Mall - IMAX",
                theatre_id="T1",
                show_count=3,
                city_name="Chennai",
                address="1 Main Road",
            ),
        )
        self.assertEqual(theatres[1].show_count, 0)

    def test_flat_cinemas_shape(self) -> None:
        body = {
            "output": {
                "cinemas": [
                    {"name": "Grand", "id": 7, "showCount": "5", "city": "Pune"},
                    {"theatreName": "Plaza", "shows": [{}, {}]},
                    {"name": "Broken", "showCount": "many"},
                ]
            }
        }
        theatres = parse_theatres(body)
        self.assertEqual([(t.name, t.show_count) for t in theatres], [("Grand", 5), ("Plaza", 2), ("Broken", 0)])
        self.assertEqual(theatres[0].theatre_id, "7")
        self.assertEqual(theatres[0].city_name, "Pune")

    def test_malformed_gives_empty_list(self) -> None:
        for body in (None, "html", {}, {"output": []}, {"output": {"cinemas": "x"}}):
            with self.subTest(body=body):
                self.assertEqual(parse_theatres(body), [])

    def test_nameless_entries_dropped(self) -> None:
        self.assertEqual(parse_theatres({"output": {"cinemas": [{"id": 1}, "junk"]}}), [])


class DedupeByNameTests(unittest.TestCase):
    def test_last_occurrence_wins(self) -> None:
        theatres = [
            Theatre(name="A", show_count=1),
            Theatre(name="B", show_count=1),
            Theatre(name="A", show_count=9),
        ]
        unique = dedupe_by_name(theatres)
        self.assertEqual(len(unique), 2)
        self.assertEqual({t.name: t.show_count for t in unique}, {"A": 9, "B": 1})


class CollectTheatresTests(unittest.IsolatedAsyncioTestCase):
    async def test_failures_are_isolated_per_film(self) -> None:
        client = FakeClient(
            FetchResult(success=True, status=200, body=listing_response()),
            theatres={
                "F1": FetchResult(success=True, status=200, body=theatre_response(("City Mall - IMAX", 2))),
                "F2": FetchResult(success=False, status=503, error="Service Unavailable"),
                "F3": RuntimeError("boom"),
                "F4": FetchResult(success=True, status=200, body=theatre_response(("City Mall - IMAX", 5), ("Lakeside", 1))),
            },
        )
        infos = [FilmInfo("F1", "2026-12-01"), FilmInfo("F2"), FilmInfo("F3"), FilmInfo("F4", "Nov 14, 2025")]

        with self.assertLogs("spidertracker.theatres", level="WARNING"):
            collection = await collect_theatres(client, infos, date(2026, 10, 18))

        self.assertEqual(
            sorted(client.theatre_calls),
            [("F1", "2026-12-01"), ("F2", "2026-10-18"), ("F3", "2026-10-18"), ("F4", "2026-10-18")],
        )
        self.assertEqual([l.error != "" for l in collection.lookups], [False, True, True, False])
        by_name = {t.name: t for t in collection.theatres}
        self.assertEqual(set(by_name), {"City Mall - IMAX", "Lakeside"})
        self.assertEqual(by_name["City Mall - IMAX"].show_count, 5)

    async def test_no_films_no_lookups(self) -> None:
        client = FakeClient(FetchResult(success=True))
        collection = await collect_theatres(client, [], date(2026, 10, 18))
        self.assertEqual(collection.theatres, [])
        self.assertEqual(client.theatre_calls, [])


if __name__ == "__main__":
    unittest.main()
