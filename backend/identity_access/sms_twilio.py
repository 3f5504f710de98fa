"""
Twilio SMS gateway using the plain REST API.

Why: The portal sends one short message per OTP request; a thin `requests`
call keeps the dependency surface small and makes timeouts explicit.

Env:
    TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
"""
from __future__ import annotations

import logging
import os

import requests

_log = logging.getLogger("certportal.identity_access.sms")

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
# (connect, read) seconds.
_HTTP_TIMEOUT = (3, 10)


class SmsDeliveryError(RuntimeError):
    pass


class TwilioSmsGateway:
    def __init__(self, account_sid: str, auth_token: str, from_number: str, *, base_url: str = TWILIO_API_BASE):
        if not account_sid or not auth_token or not from_number:
            raise ValueError("twilio credentials required")
        self._sid = account_sid
        self._token = auth_token
        self._from = from_number
        self._base = base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "TwilioSmsGateway | None":
        """Build a gateway from env, or None when any credential is missing."""
        sid = (os.getenv("TWILIO_ACCOUNT_SID") or "").strip()
        token = (os.getenv("TWILIO_AUTH_TOKEN") or "").strip()
        sender = (os.getenv("TWILIO_PHONE_NUMBER") or "").strip()
        if not sid or not token or not sender:
            return None
        return cls(sid, token, sender)

    def send_sms(self, to: str, body: str) -> None:
        url = f"{self._base}/Accounts/{self._sid}/Messages.json"
        try:
            resp = requests.post(
                url,
                data={"To": to, "From": self._from, "Body": body},
                auth=(self._sid, self._token),
                timeout=_HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise SmsDeliveryError(type(exc).__name__) from exc
        if resp.status_code >= 300:
            # Response body may echo the recipient; log status only.
            _log.warning("twilio send failed: status=%s", resp.status_code)
            raise SmsDeliveryError(f"twilio_status_{resp.status_code}")


__all__ = ["SmsDeliveryError", "TwilioSmsGateway"]
