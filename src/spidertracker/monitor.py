"""One poll cycle: fetch, match, correlate theatres, notify, escalate.

Flow per tick:
  fetch listing ─ fail ─▶ error notification
        │
  evaluate condition ─ no match ─▶ done
        │
  (keyword mode) resolve film codes ▶ theatre lookups ▶ cinema filter
        │                                   └─ no cinema match ─▶ skipped
  notification ▶ escalation check ▶ voice call | suppressed
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from telegram.ext import ContextTypes

from spidertracker.config import MODE_EXPRESSION, MODE_LEGACY, MonitorConfig
from spidertracker.dedup import MatchMemory, build_match_key, legacy_match_key
from spidertracker.films import resolve_film_info
from spidertracker.listing.extractor import get_film_names, get_movies
from spidertracker.matching.condition import build_context, evaluate_condition
from spidertracker.matching.keywords import match_all_sets, match_cinemas, matched_names
from spidertracker.notifications.formatter import (
    MatchReport,
    format_error_message,
    format_match_message,
)
from spidertracker.theatres import collect_theatres

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    FETCH_FAILED = "fetch_failed"
    NO_MATCH = "no_match"
    NO_CINEMA_MATCH = "no_cinema_match"
    NOTIFIED = "notified"
    ESCALATED = "escalated"
    ESCALATION_SUPPRESSED = "escalation_suppressed"
    ESCALATION_FAILED = "escalation_failed"


@dataclass
class CycleResult:
    outcome: CycleOutcome
    match_key: str | None = None
    report: MatchReport | None = None


class MonitorCycle:
    """Runs poll cycles against injected collaborators.

    ``client`` provides fetch_listing() / fetch_theatre_listing() (blocking),
    ``notifier`` an async send(text), ``caller`` a blocking call() or None
    when escalation is disabled. The MatchMemory is shared by all cycles.
    """

    def __init__(
        self,
        config: MonitorConfig,
        client,
        notifier,
        caller=None,
        memory: MatchMemory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.notifier = notifier
        self.caller = caller
        self.memory = memory if memory is not None else MatchMemory()
        self._clock = clock or (lambda: datetime.now(config.tzinfo))
        self._running: asyncio.Task | None = None

    async def run_cycle(self) -> CycleResult:
        """Run one cycle; cancel() aborts it from another task."""
        self._running = asyncio.current_task()
        try:
            return await self._run()
        finally:
            self._running = None

    def cancel(self) -> bool:
        """Cancel the cycle in flight, if any. Returns whether one was running."""
        task = self._running
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _run(self) -> CycleResult:
        cfg = self.config
        now = self._clock()
        logger.info("Checking API: %s", cfg.listing.url)

        result = await asyncio.to_thread(self.client.fetch_listing)
        if not result.success:
            logger.error(
                "Listing fetch failed: status=%s error=%s", result.status, result.error
            )
            await self.notifier.send(
                format_error_message(cfg.listing.url, result.status, result.error, now)
            )
            return CycleResult(CycleOutcome.FETCH_FAILED)

        body = result.body
        movies = get_movies(body)
        film_names = get_film_names(movies)
        report = MatchReport(
            api_status=result.status,
            result_status=str(body.get("result", "Unknown")) if isinstance(body, dict) else "Unknown",
            tracking=cfg.describe_tracking(),
            checked_at=now,
            film_names=film_names,
        )

        if cfg.mode == MODE_EXPRESSION:
            context = build_context(body, movies, film_names, cfg.target_movie)
            if not evaluate_condition(cfg.effective_condition, context):
                logger.info(
                    "Condition not met - %d movies found, no notification sent", len(movies)
                )
                return CycleResult(CycleOutcome.NO_MATCH)
            if cfg.target_movie:
                report.film_matches = match_all_sets(((cfg.target_movie,),), film_names)
            match_key = None
        else:
            report.film_matches = match_all_sets(cfg.film_keyword_sets, film_names)
            if not report.film_matches:
                logger.info(
                    "No film keyword set matched - %d movies, %d film names",
                    len(movies),
                    len(film_names),
                )
                return CycleResult(CycleOutcome.NO_MATCH)

            for m in report.film_matches:
                logger.info(
                    "Film set %d %s matched: %s",
                    m.set_index + 1,
                    list(m.keyword_set),
                    ", ".join(sorted(m.matching_names)),
                )

            if cfg.mode == MODE_LEGACY:
                match_key = legacy_match_key(cfg.target_movie or "")
            else:
                match_key = await self._correlate_theatres(movies, report, now)
                if report.cinemas is not None and not report.cinemas.matched:
                    logger.info(
                        "Film matched but no theatre matched cinema keywords, notification skipped"
                    )
                    return CycleResult(CycleOutcome.NO_CINEMA_MATCH, report=report)

        await self.notifier.send(format_match_message(report))
        logger.info(
            "Notification sent (%d movies, %d unique film names)",
            len(movies),
            len(film_names),
        )

        outcome = await self._escalate(match_key)
        return CycleResult(outcome, match_key=match_key, report=report)

    async def _correlate_theatres(self, movies: list[dict], report: MatchReport, now: datetime) -> str | None:
        """Resolve film codes, look up theatres and apply the cinema filter.

        Returns the match key, or None when no film code could be resolved.
        """
        cfg = self.config
        infos = resolve_film_info(movies, matched_names(report.film_matches))
        logger.info(
            "Resolved %d film codes: %s",
            len(infos),
            ", ".join(f"{i.code}({i.release_date or 'no date'})" for i in infos),
        )

        theatres = []
        if infos and cfg.theatre is not None:
            collection = await collect_theatres(self.client, infos, now.date())
            report.lookups = collection.lookups
            theatres = collection.theatres
            logger.info("Collected %d unique theatres", len(theatres))

        cinemas = match_cinemas(cfg.cinema_keyword_sets, theatres)
        report.cinemas = cinemas
        if cfg.cinema_keyword_sets:
            for index, kw_set in cinemas.matched_sets:
                logger.info("Cinema set %d %s matched", index + 1, list(kw_set))

        return build_match_key(
            [i.code for i in infos],
            [t.name for t in cinemas.matching_theatres] if cfg.cinema_keyword_sets else None,
        )

    async def _escalate(self, match_key: str | None) -> CycleOutcome:
        if self.caller is None:
            return CycleOutcome.NOTIFIED

        if match_key is not None and not self.memory.should_escalate(match_key):
            logger.info("Escalation suppressed, already called for match %s", match_key)
            return CycleOutcome.ESCALATION_SUPPRESSED

        if match_key is None:
            logger.info("No match key available, escalating without dedup")
        else:
            logger.info("New match %s, escalating", match_key)
        call_sid = await asyncio.to_thread(self.caller.call)
        if call_sid is None:
            if match_key is not None:
                # Let a later cycle retry the call
                self.memory.release(match_key)
            logger.warning("Voice call failed for match %s", match_key)
            return CycleOutcome.ESCALATION_FAILED
        return CycleOutcome.ESCALATED


async def check_listing_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Job callback: run one monitor cycle."""
    cycle: MonitorCycle = context.job.data
    try:
        result = await cycle.run_cycle()
        logger.info("Cycle finished: %s", result.outcome.value)
    except asyncio.CancelledError:
        logger.info("Monitor cycle cancelled")
        raise
    except Exception:
        logger.exception("Monitor cycle failed")
