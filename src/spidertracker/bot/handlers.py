"""Telegram bot commands for inspecting the running tracker."""

import logging

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes
from telegram.helpers import escape_markdown

from spidertracker.config import MODE_EXPRESSION

logger = logging.getLogger(__name__)


def _format_sets(sets) -> str:
    if not sets:
        return "-"
    return "\n".join(
        f"  {i}. " + escape_markdown(" + ".join(kw_set), version=1)
        for i, kw_set in enumerate(sets, 1)
    )


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start."""
    await update.message.reply_text(
        "Spider-Tracker watches the cinema listing and alerts this chat "
        "when the tracked film shows up.\n\n"
        "/status - current tracking settings"
    )


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status: show what is tracked and how many matches escalated."""
    cycle = context.bot_data.get("monitor")
    if cycle is None:
        await update.message.reply_text("Monitor is not running.")
        return

    cfg = cycle.config
    lines = [f"*Mode:* {cfg.mode}"]
    if cfg.mode == MODE_EXPRESSION:
        lines.append(f"*Condition:* `{cfg.effective_condition}`")
    else:
        lines.append("*Film keyword sets:*\n" + _format_sets(cfg.film_keyword_sets))
    lines.append("*Cinema keyword sets:*\n" + _format_sets(cfg.cinema_keyword_sets))
    lines.append(f"*Poll interval:* {cfg.poll_interval_seconds:g}s")
    lines.append(f"*Phone call:* {'on' if cfg.escalation_enabled else 'off'}")
    lines.append(f"*Escalated matches:* {len(cycle.memory)}")

    await update.message.reply_text("\n".join(lines), parse_mode=ParseMode.MARKDOWN)
