"""Telegram message text for match, error and startup notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from telegram.helpers import escape_markdown

from spidertracker.dates import LOOKUP_RELEASE, LOOKUP_TODAY_PAST
from spidertracker.matching.keywords import CinemaMatchResult, FilmMatch
from spidertracker.theatres import FilmLookup

# Telegram message limit
_MAX_MESSAGE_LEN = 4096
_MAX_THEATRES_LISTED = 25

_DATE_NOTE = {
    LOOKUP_RELEASE: "release date",
    LOOKUP_TODAY_PAST: "today, release passed",
}


@dataclass
class MatchReport:
    """Everything a match notification shows."""

    api_status: int | None
    result_status: str
    tracking: str
    checked_at: datetime
    film_matches: list[FilmMatch] = field(default_factory=list)
    film_names: list[str] = field(default_factory=list)
    lookups: list[FilmLookup] = field(default_factory=list)
    cinemas: CinemaMatchResult | None = None


def _md(text) -> str:
    return escape_markdown(str(text), version=1)


def format_match_message(report: MatchReport) -> str:
    lines: list[str] = ["🎬 *PVR Cinema Update*", ""]
    lines.append(f"*Status:* {_md(report.result_status)}")
    if report.tracking:
        lines.append(f"*Tracking:* {_md(report.tracking)}")

    if report.film_matches:
        lines.append("")
        lines.append("🎯 *TARGET MOVIE FOUND!*")
        for m in report.film_matches:
            lines.append("")
            lines.append(f"*Set {m.set_index + 1}:* {_md(' + '.join(m.keyword_set))}")
            for name in sorted(m.matching_names):
                lines.append(f"✅ {_md(name)}")
    elif report.film_names:
        lines.append("")
        lines.append(f"🎞 {len(report.film_names)} films listed")

    if report.lookups:
        lines.append("")
        lines.append("*Film codes:*")
        for lookup in report.lookups:
            note = _DATE_NOTE.get(lookup.lookup_date.source, "today, no release date")
            line = f"• `{lookup.film.code}` → {lookup.lookup_date.value} ({note})"
            if lookup.error:
                line += " ⚠️ lookup failed"
            lines.append(line)

    cinemas = report.cinemas
    if cinemas is not None and cinemas.matching_theatres:
        lines.append("")
        header = "*Theatres:*" if cinemas.unfiltered else "*Matching theatres:*"
        lines.append(header)
        for theatre in cinemas.matching_theatres[:_MAX_THEATRES_LISTED]:
            line = f"🏢 {_md(theatre.name)} ({theatre.show_count} shows)"
            if theatre.city_name:
                line += f" - {_md(theatre.city_name)}"
            lines.append(line)
        hidden = len(cinemas.matching_theatres) - _MAX_THEATRES_LISTED
        if hidden > 0:
            lines.append(f"…and {hidden} more")

    lines.append("")
    lines.append(f"*Time:* {report.checked_at.strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append(f"*API Status:* {report.api_status}")

    text = "\n".join(lines)
    if len(text) > _MAX_MESSAGE_LEN:
        text = text[: _MAX_MESSAGE_LEN - 1] + "…"
    return text


def format_error_message(url: str, status: int | None, error: str, now: datetime) -> str:
    return (
        "❌ *API Error*\n\n"
        f"URL: {_md(url)}\n"
        f"Status: {status or 'N/A'}\n"
        f"Error: {_md(error)}\n"
        f"Time: {now.isoformat()}"
    )


def format_startup_message(server_name: str, tracking: str, condition: str | None, now: datetime) -> str:
    text = (
        "Spider-Tracker is now live 🚀\n\n"
        f"📅 Time: {now.strftime('%d/%m/%Y, %H:%M:%S')}\n"
        f"🌐 Server: {_md(server_name)}\n"
        f"📊 Movie being tracked: {_md(tracking or 'None')}"
    )
    if condition:
        text += f"\n🔎 Condition: {_md(condition)}"
    return text
