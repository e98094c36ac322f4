import json
import logging
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from spidertracker.matching.keywords import KeywordSetConfig, parse_keyword_sets

logger = logging.getLogger(__name__)

MODE_KEYWORDS = "keywords"
MODE_EXPRESSION = "expression"
MODE_LEGACY = "legacy"

DEFAULT_CONDITION = "movies.length > 0"

# Placeholders are filled per film identifier by ListingClient
DEFAULT_THEATRE_BODY: dict = {
    "city": "{city}",
    "mid": "{film_id}",
    "experience": "ALL",
    "specialTag": "ALL",
    "lat": "",
    "lng": "",
    "lang": "ALL",
    "format": "ALL",
    "dated": "{date}",
    "time": "08:00-24:00",
    "cinetype": "ALL",
    "hc": "ALL",
    "adFree": False,
}


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""


@dataclass(frozen=True)
class EndpointConfig:
    url: str
    method: str = "GET"
    headers: dict | None = None
    body: object = None


@dataclass(frozen=True)
class VoiceConfig:
    account_sid: str
    auth_token: str
    from_number: str
    to_number: str


@dataclass(frozen=True)
class MonitorConfig:
    """Immutable monitor settings, built once at startup."""

    listing: EndpointConfig
    poll_interval_ms: int
    telegram_token: str
    telegram_chat_id: str

    mode: str
    film_keyword_sets: KeywordSetConfig = ()
    target_movie: str | None = None
    check_condition: str | None = None
    cinema_keyword_sets: KeywordSetConfig = ()

    theatre: EndpointConfig | None = None
    theatre_city: str = "Chennai"

    timezone: str = "Asia/Kolkata"
    server_name: str = "Unknown"
    http_timeout: float = 15.0
    log_level: str = "INFO"

    voice: VoiceConfig | None = None

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def escalation_enabled(self) -> bool:
        return self.voice is not None

    @property
    def effective_condition(self) -> str:
        """Expression evaluated in expression mode."""
        return self.check_condition or DEFAULT_CONDITION

    def describe_tracking(self) -> str:
        if self.mode == MODE_KEYWORDS:
            return " OR ".join(
                "[" + " + ".join(kw_set) + "]" for kw_set in self.film_keyword_sets
            )
        return self.target_movie or ""


def _json_env(name: str, default=None):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{name} is not valid JSON: {exc}") from exc


def _keyword_env(name: str) -> KeywordSetConfig:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return ()
    try:
        sets = parse_keyword_sets(raw)
    except ValueError as exc:
        raise ConfigError(f"{name}: {exc}") from exc
    if not sets:
        raise ConfigError(f"{name} does not contain any keyword set")
    return sets


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    logger.warning("invalid %s=%s, using default=%s", name, raw, default)
    return default


def _voice_config() -> VoiceConfig | None:
    if not _bool_env("ENABLE_PHONE_CALL"):
        return None

    values = {
        "account_sid": os.environ.get("TWILIO_ACCOUNT_SID", "").strip(),
        "auth_token": os.environ.get("TWILIO_AUTH_TOKEN", "").strip(),
        "from_number": os.environ.get("TWILIO_PHONE_NUMBER", "").strip(),
        "to_number": os.environ.get("PHONE_NUMBER_TO_CALL", "").strip(),
    }
    if not all(values.values()):
        logger.warning("Twilio credentials not configured, phone calls disabled")
        return None
    return VoiceConfig(**values)


def _endpoint(prefix: str, url: str, default_method: str, default_body=None) -> EndpointConfig:
    headers = _json_env(f"{prefix}_HEADERS", {})
    if not isinstance(headers, dict):
        raise ConfigError(f"{prefix}_HEADERS must be a JSON object")
    method = os.environ.get(f"{prefix}_METHOD", "").strip().upper() or default_method
    return EndpointConfig(
        url=url,
        method=method,
        headers=headers,
        body=_json_env(f"{prefix}_BODY", default_body),
    )


def load_config() -> MonitorConfig:
    """Read the environment (and .env) into a MonitorConfig.

    Raises ConfigError for anything that must stop the process before
    the first cycle.
    """
    load_dotenv()

    api_url = os.environ.get("API_URL", "").strip()
    if not api_url:
        raise ConfigError("API_URL is required")

    token = os.environ.get("TELEGRAM_BOT_TOKEN", "").strip()
    chat_id = os.environ.get("TELEGRAM_CHAT_ID", "").strip()
    if not token or not chat_id:
        raise ConfigError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are required")

    try:
        poll_interval_ms = int(os.environ.get("POLL_INTERVAL", "60000").strip())
    except ValueError as exc:
        raise ConfigError("POLL_INTERVAL must be an integer (milliseconds)") from exc
    if poll_interval_ms <= 0:
        raise ConfigError("POLL_INTERVAL must be positive")

    timezone = os.environ.get("TIMEZONE", "").strip() or "Asia/Kolkata"
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"unknown TIMEZONE={timezone}") from exc

    try:
        http_timeout = float(os.environ.get("HTTP_TIMEOUT", "15").strip())
    except ValueError as exc:
        raise ConfigError("HTTP_TIMEOUT must be a number of seconds") from exc

    log_level = os.environ.get("LOG_LEVEL", "").strip().upper() or "INFO"
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"unknown LOG_LEVEL={log_level}")

    target_movie = os.environ.get("MOVIE_NAME", "").strip() or None
    check_condition = os.environ.get("CHECK_CONDITION", "").strip() or None
    film_sets = _keyword_env("MOVIE_KEYWORDS")
    cinema_sets = _keyword_env("CINEMA_KEYWORDS")

    if film_sets:
        mode = MODE_KEYWORDS
    elif check_condition:
        mode = MODE_EXPRESSION
    elif target_movie:
        mode = MODE_LEGACY
        film_sets = ((target_movie,),)
    else:
        mode = MODE_EXPRESSION

    theatre_url = os.environ.get("THEATRE_API_URL", "").strip()
    theatre = (
        _endpoint("THEATRE_API", theatre_url, "POST", DEFAULT_THEATRE_BODY)
        if theatre_url
        else None
    )
    if cinema_sets and theatre is None:
        raise ConfigError("CINEMA_KEYWORDS requires THEATRE_API_URL")

    return MonitorConfig(
        listing=_endpoint("API", api_url, "GET"),
        poll_interval_ms=poll_interval_ms,
        telegram_token=token,
        telegram_chat_id=chat_id,
        mode=mode,
        film_keyword_sets=film_sets,
        target_movie=target_movie,
        check_condition=check_condition,
        cinema_keyword_sets=cinema_sets,
        theatre=theatre,
        theatre_city=os.environ.get("THEATRE_CITY", "").strip() or "Chennai",
        timezone=timezone,
        server_name=os.environ.get("SERVER", "").strip() or "Unknown",
        http_timeout=http_timeout,
        log_level=log_level,
        voice=_voice_config(),
    )
