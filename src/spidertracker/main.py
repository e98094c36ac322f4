"""Spider-Tracker entry point.

Loads configuration, sends the startup message, then runs one monitor
cycle immediately and every POLL_INTERVAL on the Telegram JobQueue.
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime

from telegram import Update
from telegram.ext import Application, CommandHandler

from spidertracker.bot.handlers import start_command, status_command
from spidertracker.config import MODE_EXPRESSION, ConfigError, MonitorConfig, load_config
from spidertracker.dedup import MatchMemory
from spidertracker.listing.http import ListingClient
from spidertracker.monitor import MonitorCycle, check_listing_job
from spidertracker.notifications.formatter import format_startup_message
from spidertracker.notifications.telegram import TelegramNotifier
from spidertracker.notifications.voice import VoiceCaller

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def _use_log_timezone(cfg: MonitorConfig) -> None:
    """Render log timestamps in the configured zone."""
    tz = cfg.tzinfo
    for handler in logging.getLogger().handlers:
        if handler.formatter is not None:
            handler.formatter.converter = lambda secs: datetime.fromtimestamp(secs, tz).timetuple()


def _log_settings(cfg: MonitorConfig) -> None:
    logger.info("=" * 60)
    logger.info("Starting Spider-Tracker API Monitor...")
    logger.info("API URL: %s", cfg.listing.url)
    logger.info("Poll Interval: %g seconds", cfg.poll_interval_seconds)
    logger.info("Server: %s", cfg.server_name)
    logger.info("Mode: %s", cfg.mode)
    if cfg.mode == MODE_EXPRESSION:
        logger.info("Check Condition: %s", cfg.effective_condition)
    else:
        logger.info("Tracking: %s", cfg.describe_tracking())
    if cfg.cinema_keyword_sets:
        logger.info("Cinema keyword sets: %s", [list(s) for s in cfg.cinema_keyword_sets])
    if cfg.theatre is not None:
        logger.info("Theatre API URL: %s", cfg.theatre.url)
    logger.info("Phone call escalation: %s", "on" if cfg.escalation_enabled else "off")
    logger.info("=" * 60)


def _install_stop_signals(application: Application, cycle: MonitorCycle) -> None:
    """Abort the running cycle on SIGINT/SIGTERM, then stop the application.

    JobQueue.stop() waits for running jobs, so the cycle has to be cancelled
    before run_polling begins its shutdown sequence.
    """

    def request_stop(signum: int) -> None:
        logger.info("Received %s, stopping", signal.Signals(signum).name)
        if cycle.cancel():
            logger.info("Cancelled the monitor cycle in flight")
        application.stop_running()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, request_stop, signum)
        except NotImplementedError:
            # No loop signal handlers on Windows; Ctrl+C still raises KeyboardInterrupt
            logger.debug("Signal handler for %s not supported", signum)


def build_application(cfg: MonitorConfig) -> Application:
    client = ListingClient(
        cfg.listing,
        theatre=cfg.theatre,
        theatre_city=cfg.theatre_city,
        timeout=cfg.http_timeout,
    )
    caller = VoiceCaller(cfg.voice, timeout=cfg.http_timeout) if cfg.voice else None

    async def post_init(application: Application) -> None:
        notifier = TelegramNotifier(application.bot, cfg.telegram_chat_id)
        cycle = MonitorCycle(cfg, client, notifier, caller=caller, memory=MatchMemory())
        application.bot_data["monitor"] = cycle
        _install_stop_signals(application, cycle)

        now = datetime.now(cfg.tzinfo)
        condition = cfg.effective_condition if cfg.mode == MODE_EXPRESSION else None
        if await notifier.send(
            format_startup_message(cfg.server_name, cfg.describe_tracking(), condition, now)
        ):
            logger.info("Startup message sent successfully")

        # First run right away, then on the fixed interval
        application.job_queue.run_repeating(
            check_listing_job,
            interval=cfg.poll_interval_seconds,
            first=0,
            data=cycle,
            name="listing_monitor",
        )

    async def post_shutdown(application: Application) -> None:
        logger.info("Shutting down gracefully...")
        client.close()

    app = (
        Application.builder()
        .token(cfg.telegram_token)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("status", status_command))
    return app


def main() -> None:
    """Load config and run until interrupted."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)

    logging.getLogger().setLevel(cfg.log_level)
    _use_log_timezone(cfg)
    _log_settings(cfg)

    app = build_application(cfg)
    # Stop signals are handled by _install_stop_signals
    app.run_polling(allowed_updates=Update.ALL_TYPES, stop_signals=None)


if __name__ == "__main__":
    main()
