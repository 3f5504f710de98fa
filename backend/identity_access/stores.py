"""
Session store backed by the key/value port.

Why: Keep sessions opaque to the client. The browser holds only the token and
sends it in `X-Session-Token`; email and role stay server-side under
`session:<token>`.

Security: Tokens carry 256 bits from `secrets.token_urlsafe(32)`. Expired
sessions are deleted on the lookup that finds them expired.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import json
import os
import secrets
import time

from storage.kv import KeyValueStore

SESSION_TTL_DEFAULT = 7 * 24 * 60 * 60


def _now_ms() -> int:
    return int(time.time() * 1000)


def session_ttl_seconds() -> int:
    """SESSION_TTL_SECONDS; `0` disables expiry, invalid values fall back to 7 days."""
    raw = (os.getenv("SESSION_TTL_SECONDS") or "").strip()
    if not raw:
        return SESSION_TTL_DEFAULT
    try:
        value = int(raw)
    except ValueError:
        return SESSION_TTL_DEFAULT
    return value if value >= 0 else SESSION_TTL_DEFAULT


@dataclass
class SessionRecord:
    token: str
    email: str
    role: str
    created_at: int
    expires_at: Optional[int] = None

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now_ms

    def to_json(self) -> str:
        data: Dict[str, Any] = {
            "token": self.token,
            "email": self.email,
            "role": self.role,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }
        return json.dumps(data, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "SessionRecord":
        data = json.loads(raw)
        expires = data.get("expiresAt")
        return cls(
            token=str(data["token"]),
            email=str(data["email"]),
            role=str(data["role"]),
            created_at=int(data.get("createdAt") or 0),
            expires_at=int(expires) if expires is not None else None,
        )


class SessionStore:
    def __init__(self, kv: KeyValueStore, ttl_seconds: int | None = None):
        self._kv = kv
        self._ttl = session_ttl_seconds() if ttl_seconds is None else ttl_seconds

    @staticmethod
    def _key(token: str) -> str:
        return f"session:{token}"

    def create(self, *, email: str, role: str) -> SessionRecord:
        now = _now_ms()
        expires = now + self._ttl * 1000 if self._ttl > 0 else None
        while True:
            token = secrets.token_urlsafe(32)
            rec = SessionRecord(token=token, email=email, role=role, created_at=now, expires_at=expires)
            if self._kv.set_if_absent(self._key(token), rec.to_json()):
                return rec

    def get(self, token: str) -> Optional[SessionRecord]:
        if not token:
            return None
        raw = self._kv.get(self._key(token))
        if raw is None:
            return None
        try:
            rec = SessionRecord.from_json(raw)
        except (ValueError, KeyError, TypeError):
            return None
        if rec.is_expired(_now_ms()):
            self._kv.delete(self._key(token))
            return None
        return rec

    def delete(self, token: str) -> None:
        if token:
            self._kv.delete(self._key(token))


__all__ = ["SESSION_TTL_DEFAULT", "SessionRecord", "SessionStore", "session_ttl_seconds"]
