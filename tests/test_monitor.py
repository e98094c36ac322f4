import asyncio
import unittest
from datetime import datetime
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

from spidertracker.config import (
    MODE_EXPRESSION,
    MODE_KEYWORDS,
    MODE_LEGACY,
    EndpointConfig,
    MonitorConfig,
)
from spidertracker.dedup import MatchMemory
from spidertracker.listing.http import FetchResult
from spidertracker.monitor import CycleOutcome, MonitorCycle, check_listing_job
from tests.fakes import FakeCaller, FakeClient, FakeNotifier, StalledNotifier
from tests.fixtures import OTHER_MOVIE, listing_response, theatre_response

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=ZoneInfo("Asia/Kolkata"))

NO_WAY_HOME = {
    "filmName": "Spider-Man: No Way Home",
    "films": [{"id": "F1", "filmName": "Spider-Man: No Way Home", "releaseDate": "Nov 14, 2025"}],
}


def _config(**overrides) -> MonitorConfig:
    values = dict(
        listing=EndpointConfig(url="https://listing.example.com/now"),
        poll_interval_ms=60000,
        telegram_token="123:abc",
        telegram_chat_id="42",
        mode=MODE_KEYWORDS,
        film_keyword_sets=(("Spider", "No Way Home"),),
        theatre=EndpointConfig(url="https://listing.example.com/sessions", method="POST"),
    )
    values.update(overrides)
    return MonitorConfig(**values)


def _ok(body) -> FetchResult:
    return FetchResult(success=True, status=200, body=body)


class MonitorCycleTests(unittest.IsolatedAsyncioTestCase):
    def _cycle(self, config, client, caller=None, memory=None) -> MonitorCycle:
        self.notifier = FakeNotifier()
        return MonitorCycle(
            config,
            client,
            self.notifier,
            caller=caller,
            memory=memory if memory is not None else MatchMemory(),
            clock=lambda: NOW,
        )

    async def test_repeat_match_notifies_again_but_escalates_once(self) -> None:
        client = FakeClient(
            _ok(listing_response(NO_WAY_HOME, OTHER_MOVIE)),
            theatres={"F1": _ok(theatre_response(("City Mall - Digital", 4)))},
        )
        caller = FakeCaller()
        cycle = self._cycle(_config(), client, caller=caller)

        first = await cycle.run_cycle()
        self.assertEqual(first.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(first.match_key, "F1|all")
        self.assertEqual(len(first.report.film_matches), 1)
        self.assertTrue(first.report.cinemas.unfiltered)

        second = await cycle.run_cycle()
        self.assertEqual(second.outcome, CycleOutcome.ESCALATION_SUPPRESSED)
        self.assertEqual(second.match_key, "F1|all")

        self.assertEqual(len(self.notifier.messages), 2)
        self.assertEqual(caller.calls, 1)
        self.assertIn("Spider-Man: No Way Home", self.notifier.messages[0])

    async def test_past_release_date_looks_up_today(self) -> None:
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        await self._cycle(_config(), client).run_cycle()
        self.assertEqual(client.theatre_calls, [("F1", "2026-10-18")])

    async def test_cinema_keywords_narrow_theatres_and_key(self) -> None:
        client = FakeClient(
            _ok(listing_response(NO_WAY_HOME)),
            theatres={"F1": _ok(theatre_response(("City Mall - Digital", 4), ("City Mall - IMAX", 2)))},
        )
        caller = FakeCaller()
        cycle = self._cycle(_config(cinema_keyword_sets=(("IMAX",),)), client, caller=caller)

        result = await cycle.run_cycle()

        self.assertEqual(result.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(
            [t.name for t in result.report.cinemas.matching_theatres], ["City Mall - IMAX"]
        )
        self.assertEqual(result.match_key, "F1|City Mall - IMAX")
        self.assertIn("City Mall - IMAX", self.notifier.messages[0])
        self.assertNotIn("City Mall - Digital", self.notifier.messages[0])

    async def test_new_theatre_subset_escalates_again(self) -> None:
        client = FakeClient(
            _ok(listing_response(NO_WAY_HOME)),
            theatres={"F1": _ok(theatre_response(("City Mall - IMAX", 2)))},
        )
        caller = FakeCaller()
        cycle = self._cycle(_config(cinema_keyword_sets=(("IMAX",),)), client, caller=caller)
        await cycle.run_cycle()

        client.theatres["F1"] = _ok(theatre_response(("City Mall - IMAX", 2), ("Airport IMAX", 1)))
        result = await cycle.run_cycle()

        self.assertEqual(result.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(result.match_key, "F1|Airport IMAX,City Mall - IMAX")
        self.assertEqual(caller.calls, 2)

    async def test_no_cinema_match_skips_notification(self) -> None:
        client = FakeClient(
            _ok(listing_response(NO_WAY_HOME)),
            theatres={"F1": _ok(theatre_response(("City Mall - Digital", 4)))},
        )
        caller = FakeCaller()
        memory = MatchMemory()
        cycle = self._cycle(_config(cinema_keyword_sets=(("IMAX",),)), client, caller=caller, memory=memory)

        result = await cycle.run_cycle()

        self.assertEqual(result.outcome, CycleOutcome.NO_CINEMA_MATCH)
        self.assertEqual(self.notifier.messages, [])
        self.assertEqual(caller.calls, 0)
        self.assertEqual(len(memory), 0)

    async def test_fetch_failure_sends_error_only(self) -> None:
        client = FakeClient(FetchResult(success=False, error="connection refused"))
        caller = FakeCaller()
        memory = MatchMemory()
        cycle = self._cycle(_config(), client, caller=caller, memory=memory)

        with self.assertLogs("spidertracker.monitor", level="ERROR"):
            result = await cycle.run_cycle()

        self.assertEqual(result.outcome, CycleOutcome.FETCH_FAILED)
        self.assertEqual(len(self.notifier.messages), 1)
        self.assertIn("API Error", self.notifier.messages[0])
        self.assertIn("Status: N/A", self.notifier.messages[0])
        self.assertEqual(client.theatre_calls, [])
        self.assertEqual(caller.calls, 0)
        self.assertEqual(len(memory), 0)

    async def test_no_film_match(self) -> None:
        client = FakeClient(_ok(listing_response(OTHER_MOVIE)))
        result = await self._cycle(_config(), client, caller=FakeCaller()).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.NO_MATCH)
        self.assertEqual(self.notifier.messages, [])
        self.assertEqual(client.theatre_calls, [])

    async def test_malformed_listing_is_no_match(self) -> None:
        client = FakeClient(_ok("<html>maintenance</html>"))
        result = await self._cycle(_config(), client).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.NO_MATCH)

    async def test_unresolved_film_code_escalates_every_time(self) -> None:
        coded_nothing = {"filmName": "Spider-Man: No Way Home"}
        client = FakeClient(_ok(listing_response(coded_nothing)))
        caller = FakeCaller()
        cycle = self._cycle(_config(), client, caller=caller)

        first = await cycle.run_cycle()
        second = await cycle.run_cycle()

        self.assertIsNone(first.match_key)
        self.assertEqual(second.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(caller.calls, 2)
        self.assertEqual(client.theatre_calls, [])

    async def test_escalation_disabled(self) -> None:
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        memory = MatchMemory()
        result = await self._cycle(_config(), client, memory=memory).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.NOTIFIED)
        self.assertEqual(len(memory), 0)

    async def test_without_theatre_endpoint(self) -> None:
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        result = await self._cycle(_config(theatre=None), client, caller=FakeCaller()).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(result.match_key, "F1|all")
        self.assertEqual(client.theatre_calls, [])

    async def test_legacy_target_uses_sentinel_key(self) -> None:
        config = _config(
            mode=MODE_LEGACY,
            target_movie="spider",
            film_keyword_sets=(("spider",),),
        )
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        caller = FakeCaller()
        cycle = self._cycle(config, client, caller=caller)

        first = await cycle.run_cycle()
        second = await cycle.run_cycle()

        self.assertEqual(first.match_key, "legacy:spider")
        self.assertEqual(first.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(second.outcome, CycleOutcome.ESCALATION_SUPPRESSED)
        self.assertEqual(client.theatre_calls, [])
        self.assertEqual(len(self.notifier.messages), 2)

    async def test_expression_mode(self) -> None:
        config = _config(mode=MODE_EXPRESSION, film_keyword_sets=(), check_condition="hasFilm('No Way')")
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        caller = FakeCaller()
        cycle = self._cycle(config, client, caller=caller)

        result = await cycle.run_cycle()
        await cycle.run_cycle()

        self.assertEqual(result.outcome, CycleOutcome.ESCALATED)
        self.assertIsNone(result.match_key)
        self.assertEqual(caller.calls, 2)
        self.assertEqual(client.theatre_calls, [])

    async def test_default_condition_needs_movies(self) -> None:
        config = _config(mode=MODE_EXPRESSION, film_keyword_sets=())
        client = FakeClient(_ok(listing_response()))
        result = await self._cycle(config, client).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.NO_MATCH)

    async def test_broken_condition_is_not_met(self) -> None:
        config = _config(mode=MODE_EXPRESSION, film_keyword_sets=(), check_condition="movies.length >")
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        with self.assertLogs("spidertracker.matching.condition", level="WARNING"):
            result = await self._cycle(config, client).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.NO_MATCH)
        self.assertEqual(self.notifier.messages, [])

    async def test_cycles_share_memory(self) -> None:
        memory = MatchMemory()
        caller = FakeCaller()
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        a = self._cycle(_config(), client, caller=caller, memory=memory)
        b = self._cycle(_config(), client, caller=caller, memory=memory)

        await a.run_cycle()
        result = await b.run_cycle()

        self.assertEqual(result.outcome, CycleOutcome.ESCALATION_SUPPRESSED)
        self.assertEqual(caller.calls, 1)

    async def test_failed_call_is_retried_next_cycle(self) -> None:
        client = FakeClient(_ok(listing_response(NO_WAY_HOME)))
        caller = FakeCaller(failures=1)
        memory = MatchMemory()
        cycle = self._cycle(_config(theatre=None), client, caller=caller, memory=memory)

        with self.assertLogs("spidertracker.monitor", level="WARNING"):
            first = await cycle.run_cycle()
        self.assertEqual(first.outcome, CycleOutcome.ESCALATION_FAILED)
        self.assertNotIn("F1|all", memory)

        second = await cycle.run_cycle()
        third = await cycle.run_cycle()
        self.assertEqual(second.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(third.outcome, CycleOutcome.ESCALATION_SUPPRESSED)
        self.assertEqual(caller.calls, 2)

    async def test_odd_film_names_do_not_break_the_cycle(self) -> None:
        odd = {"filmName": ["weird"], "films": [{"id": "Z1", "filmName": {"en": "Z"}}]}
        client = FakeClient(_ok(listing_response(odd, NO_WAY_HOME)))
        result = await self._cycle(_config(theatre=None), client, caller=FakeCaller()).run_cycle()
        self.assertEqual(result.outcome, CycleOutcome.ESCALATED)
        self.assertEqual(result.match_key, "F1|all")
        self.assertEqual(len(self.notifier.messages), 1)


class CancelCycleTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.notifier = StalledNotifier()
        self.caller = FakeCaller()
        self.memory = MatchMemory()
        self.cycle = MonitorCycle(
            _config(theatre=None),
            FakeClient(_ok(listing_response(NO_WAY_HOME))),
            self.notifier,
            caller=self.caller,
            memory=self.memory,
            clock=lambda: NOW,
        )

    async def test_cancel_stops_cycle_before_escalation(self) -> None:
        self.assertFalse(self.cycle.cancel())
        task = asyncio.create_task(self.cycle.run_cycle())
        await self.notifier.sending.wait()

        self.assertTrue(self.cycle.cancel())
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertEqual(self.caller.calls, 0)
        self.assertEqual(len(self.memory), 0)
        self.assertFalse(self.cycle.cancel())

    async def test_job_callback_lets_cancellation_through(self) -> None:
        context = MagicMock()
        context.job.data = self.cycle
        task = asyncio.create_task(check_listing_job(context))
        await self.notifier.sending.wait()

        with self.assertLogs("spidertracker.monitor", level="INFO") as logs:
            self.cycle.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
        self.assertIn("Monitor cycle cancelled", "\n".join(logs.output))


if __name__ == "__main__":
    unittest.main()
