"""Voice-call escalation through Twilio."""

from __future__ import annotations

import logging

import requests
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from spidertracker.config import VoiceConfig

logger = logging.getLogger(__name__)

# Just rings; hangs up immediately if answered
RING_ONLY_TWIML = "<Response><Hangup/></Response>"


class VoiceCaller:
    """Places a ring-only call. Synchronous, wrap with asyncio.to_thread()."""

    def __init__(self, config: VoiceConfig, timeout: float = 15.0, client: Client | None = None) -> None:
        self.config = config
        self._client = client or Client(
            config.account_sid,
            config.auth_token,
            http_client=TwilioHttpClient(timeout=timeout),
        )

    def call(self) -> str | None:
        """Start the call and return its SID, or None on failure."""
        try:
            call = self._client.calls.create(
                twiml=RING_ONLY_TWIML,
                to=self.config.to_number,
                from_=self.config.from_number,
            )
        except (TwilioException, requests.RequestException):
            logger.exception("Error making phone call")
            return None

        logger.info("Phone call initiated. Call SID: %s", call.sid)
        return call.sid
