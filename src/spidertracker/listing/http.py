"""HTTP access to the listing and theatre-listing endpoints.

Both calls are synchronous (requests) and meant to be wrapped with
asyncio.to_thread(). They never raise: transport errors and non-2xx
responses come back as FetchResult(success=False). Each worker thread
gets its own requests.Session.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

import requests

from spidertracker.config import EndpointConfig

logger = logging.getLogger(__name__)

_BODY_METHODS = {"POST", "PUT", "PATCH"}


@dataclass
class FetchResult:
    success: bool
    status: int | None = None
    body: Any = None
    error: str = ""


def render_template(template: Any, values: dict[str, str]) -> Any:
    """Substitute ``{name}`` placeholders inside string values of a JSON template."""
    if isinstance(template, dict):
        return {k: render_template(v, values) for k, v in template.items()}
    if isinstance(template, list):
        return [render_template(v, values) for v in template]
    if isinstance(template, str):
        text = template
        for name, value in values.items():
            text = text.replace("{" + name + "}", str(value))
        return text
    return template


def _headers(configured: dict | None) -> dict:
    headers = dict(configured or {})
    if not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = "application/json"
    return headers


def _decode(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class ListingClient:
    """Issues the primary listing request and per-film theatre lookups."""

    def __init__(
        self,
        listing: EndpointConfig,
        theatre: EndpointConfig | None = None,
        theatre_city: str = "",
        timeout: float = 15.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.listing = listing
        self.theatre = theatre
        self.theatre_city = theatre_city
        self.timeout = timeout
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _request(self, endpoint: EndpointConfig, body: Any) -> FetchResult:
        method = endpoint.method.upper()
        kwargs: dict[str, Any] = {
            "headers": _headers(endpoint.headers),
            "timeout": self.timeout,
        }
        if body is not None and method in _BODY_METHODS:
            kwargs["json"] = body

        try:
            response = self._session.request(method, endpoint.url, **kwargs)
        except requests.RequestException as exc:
            return FetchResult(success=False, error=str(exc))

        payload = _decode(response)
        if not response.ok:
            return FetchResult(
                success=False,
                status=response.status_code,
                body=payload,
                error=f"Request failed with status code {response.status_code}",
            )
        return FetchResult(success=True, status=response.status_code, body=payload)

    def fetch_listing(self) -> FetchResult:
        """Call the primary listing endpoint."""
        return self._request(self.listing, self.listing.body)

    def fetch_theatre_listing(self, film_id: str, date_str: str) -> FetchResult:
        """Call the theatre-listing endpoint for one film identifier and date."""
        if self.theatre is None:
            return FetchResult(success=False, error="theatre endpoint not configured")
        body = render_template(
            self.theatre.body,
            {"film_id": film_id, "date": date_str, "city": self.theatre_city},
        )
        return self._request(self.theatre, body)

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
