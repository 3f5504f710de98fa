"""
One-time codes proving control of a mobile number.

Flow:
    send(mobile)         -> store `otp:<mobile>` (overwrites), deliver via SMS
    verify(mobile, code) -> delete on match or expiry, keep on mismatch
    claim_verified()     -> take the `otp-verified:<mobile>` marker left by verify
    release_verified()   -> put a claimed marker back (signup did not complete)

The SMS gateway is injected. When none is configured, the code can be handed
back to the caller for local development (`OTP_DEV_CODE_FALLBACK`).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
import json
import logging
import os
import re
import secrets
import time

from shared.errors import OtpExpired, OtpMismatch, OtpNotFound, UpstreamFailure, ValidationError
from storage.kv import KeyValueStore

_log = logging.getLogger("certportal.identity_access.otp")

OTP_TTL_SECONDS = 10 * 60
VERIFIED_TTL_SECONDS = 30 * 60
OTP_MESSAGE = "Your GAT Certificate Portal OTP is: {code}. Valid for 10 minutes."

_MOBILE_RE = re.compile(r"^\+?\d{10,15}$")


def _now_ms() -> int:
    return int(time.time() * 1000)


class SmsGatewayNotConfigured(RuntimeError):
    pass


class SmsGateway(Protocol):
    def send_sms(self, to: str, body: str) -> None: ...


class NullSmsGateway:
    """Gateway used when no SMS provider is configured."""

    def send_sms(self, to: str, body: str) -> None:  # noqa: D401
        raise SmsGatewayNotConfigured("sms_gateway_not_configured")


def normalize_mobile(mobile: object) -> str:
    """Strip spaces and dashes; reject anything that is not +?digits{10,15}."""
    if not isinstance(mobile, str) or not mobile.strip():
        raise ValidationError("missing_fields", "Mobile number is required")
    compact = re.sub(r"[\s-]+", "", mobile)
    if not _MOBILE_RE.match(compact):
        raise ValidationError("invalid_mobile", "Invalid mobile number")
    return compact


def _dev_fallback_enabled() -> bool:
    raw = (os.getenv("OTP_DEV_CODE_FALLBACK") or "").strip().lower()
    if raw:
        return raw == "true"
    env = (os.getenv("CERTPORTAL_ENV") or "dev").strip().lower()
    return env not in {"prod", "production", "stage", "staging"}


@dataclass(frozen=True)
class OneTimeCode:
    mobile: str
    code: str
    expires_at: int

    def to_json(self) -> str:
        return json.dumps({"mobile": self.mobile, "code": self.code, "expiresAt": self.expires_at})

    @classmethod
    def from_json(cls, raw: str) -> "OneTimeCode":
        data = json.loads(raw)
        return cls(mobile=str(data["mobile"]), code=str(data["code"]), expires_at=int(data["expiresAt"]))


@dataclass(frozen=True)
class SendResult:
    delivered: bool
    dev_code: Optional[str] = None


class OTPService:
    def __init__(self, kv: KeyValueStore, gateway: SmsGateway | None = None):
        self._kv = kv
        self._gateway = gateway or NullSmsGateway()

    @staticmethod
    def _key(mobile: str) -> str:
        return f"otp:{mobile}"

    @staticmethod
    def _verified_key(mobile: str) -> str:
        return f"otp-verified:{mobile}"

    def send(self, mobile: str) -> SendResult:
        mobile = normalize_mobile(mobile)
        code = f"{secrets.randbelow(1_000_000):06d}"
        record = OneTimeCode(mobile=mobile, code=code, expires_at=_now_ms() + OTP_TTL_SECONDS * 1000)
        stored = record.to_json()
        self._kv.set(self._key(mobile), stored)
        try:
            self._gateway.send_sms(mobile, OTP_MESSAGE.format(code=code))
        except SmsGatewayNotConfigured:
            if _dev_fallback_enabled():
                _log.warning("SMS gateway not configured; returning OTP to caller (dev fallback) mobile=%s", mobile)
                return SendResult(delivered=False, dev_code=code)
            self._kv.delete_if(self._key(mobile), stored)
            raise UpstreamFailure("sms_gateway_not_configured", "SMS service not configured")
        except Exception as exc:
            _log.warning("SMS delivery failed: error=%s", type(exc).__name__)
            self._kv.delete_if(self._key(mobile), stored)
            raise UpstreamFailure("sms_delivery_failed", "Failed to send OTP") from exc
        return SendResult(delivered=True)

    def verify(self, mobile: str, code: str) -> None:
        mobile = normalize_mobile(mobile)
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("missing_fields", "Mobile and OTP are required")
        key = self._key(mobile)
        raw = self._kv.get(key)
        if raw is None:
            raise OtpNotFound()
        try:
            record = OneTimeCode.from_json(raw)
        except (ValueError, KeyError, TypeError):
            self._kv.delete_if(key, raw)
            raise OtpNotFound()
        if record.expires_at <= _now_ms():
            self._kv.delete_if(key, raw)
            raise OtpExpired()
        if not secrets.compare_digest(record.code, code.strip()):
            raise OtpMismatch()
        # Single use: only the caller whose CAS removes the exact record wins.
        # A code sent after the CAS replaces the empty value and must survive.
        if not self._kv.compare_and_set(key, raw, ""):
            raise OtpNotFound()
        self._kv.delete_if(key, "")
        marker = json.dumps({"mobile": mobile, "expiresAt": _now_ms() + VERIFIED_TTL_SECONDS * 1000})
        self._kv.set(self._verified_key(mobile), marker)

    def claim_verified(self, mobile: str) -> Optional[str]:
        """Atomically take a live verified-mobile marker.

        Returns the marker as stored, for `release_verified`, or None when there
        is no live marker or a concurrent caller claimed it first.
        """
        try:
            mobile = normalize_mobile(mobile)
        except ValidationError:
            return None
        key = self._verified_key(mobile)
        raw = self._kv.get(key)
        if raw is None:
            return None
        try:
            expires_at = int(json.loads(raw)["expiresAt"])
        except (ValueError, KeyError, TypeError):
            expires_at = 0
        if expires_at <= _now_ms():
            self._kv.delete_if(key, raw)
            return None
        if not self._kv.delete_if(key, raw):
            return None
        return raw

    def release_verified(self, mobile: str, marker: str) -> None:
        # A newer verify wins over the marker being returned.
        self._kv.set_if_absent(self._verified_key(normalize_mobile(mobile)), marker)

    def consume_verified(self, mobile: str) -> bool:
        return self.claim_verified(mobile) is not None


__all__ = [
    "OTP_MESSAGE",
    "OTP_TTL_SECONDS",
    "VERIFIED_TTL_SECONDS",
    "NullSmsGateway",
    "OTPService",
    "OneTimeCode",
    "SendResult",
    "SmsGateway",
    "SmsGatewayNotConfigured",
    "normalize_mobile",
]
