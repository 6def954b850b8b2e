"""
Twilio-backed user notifications.

Text preference sends an SMS; phone preference places a short voice call
that reads the message aloud. The Twilio REST client is synchronous, so
each request runs in a worker thread.
"""

import asyncio
import logging
from typing import Any, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from concierge.config import NotificationConfig
from concierge.errors import NotificationFailure
from concierge.schemas.request_schema import ContactPreference

logger = logging.getLogger(__name__)


class TwilioNotifier:
    """Sends recommendation notices through Twilio SMS or voice."""

    def __init__(self, config: NotificationConfig, client: Optional[Any] = None) -> None:
        if not config.twilio_phone_number:
            raise ValueError("TWILIO_PHONE_NUMBER is required for user notifications")
        self._from = config.twilio_phone_number
        self._client = client or Client(config.twilio_account_sid, config.twilio_auth_token)

    def _send_sms(self, destination: str, message: str) -> str:
        sent = self._client.messages.create(body=message, to=destination, from_=self._from)
        return sent.sid

    def _place_call(self, destination: str, message: str) -> str:
        response = VoiceResponse()
        response.say(message)
        response.hangup()
        call = self._client.calls.create(twiml=str(response), to=destination, from_=self._from)
        return call.sid

    async def notify(
        self, destination: str, message: str, method: ContactPreference
    ) -> str:
        send = self._place_call if method == ContactPreference.PHONE else self._send_sms
        try:
            sid = await asyncio.to_thread(send, destination, message)
        except (TwilioException, OSError) as exc:
            raise NotificationFailure(
                f"Twilio {method.value} notification to {destination} failed: {exc}"
            ) from exc
        logger.info("Sent %s notification to %s (sid %s)", method.value, destination, sid)
        return sid
