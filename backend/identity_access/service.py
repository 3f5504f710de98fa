"""Account and session use cases (signup, login, session verification, logout).

Why:
    Keeps credential handling out of the FastAPI routes so the rules (domain
    allow-list, unique email, uniform login failure) are unit-testable without
    HTTP and the web layer only maps `PortalError`s to responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple
import json
import logging
import os
import time

from shared.errors import Conflict, InvalidCredentials, Unauthenticated, ValidationError
from storage.kv import KeyValueStore

from .domain import (
    ALLOWED_ROLES,
    Account,
    AccountPublic,
    account_key,
    allowed_registration_domains,
    is_allowed_registration_email,
    normalize_email,
)
from .otp import OTPService, normalize_mobile
from .passwords import burn_verification, hash_password, verify_password
from .stores import SessionStore

_log = logging.getLogger("certportal.identity_access.auth")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _require_verified_mobile() -> bool:
    return (os.getenv("SIGNUP_REQUIRE_VERIFIED_MOBILE") or "").strip().lower() == "true"


def _clean(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


@dataclass
class AuthService:
    kv: KeyValueStore
    sessions: SessionStore
    otp: Optional[OTPService] = None

    def _load_account(self, email: str) -> Optional[Account]:
        raw = self.kv.get(account_key(email))
        if raw is None:
            return None
        return Account.from_record(json.loads(raw))

    def signup(
        self,
        *,
        email: str,
        password: str,
        mobile: str,
        name: str,
        role: str,
        usn: Optional[str] = None,
    ) -> AccountPublic:
        email_n = normalize_email(email)
        name_c = _clean(name)
        role_c = _clean(role).lower()
        if not email_n or not password or not _clean(mobile) or not name_c or not role_c:
            raise ValidationError("missing_fields", "All fields are required")
        if role_c not in ALLOWED_ROLES:
            raise ValidationError("invalid_role", "Role must be student or admin")
        if not is_allowed_registration_email(email_n, allowed_registration_domains()):
            raise ValidationError("invalid_email_domain", "Please use your institutional email address")
        mobile_n = normalize_mobile(mobile)
        marker: Optional[str] = None
        if _require_verified_mobile():
            marker = self.otp.claim_verified(mobile_n) if self.otp is not None else None
            if marker is None:
                raise ValidationError("mobile_not_verified", "Verify your mobile number first")
        usn_c = _clean(usn) if role_c == "student" else ""
        account = Account(
            email=email_n,
            password_hash=hash_password(password),
            mobile=mobile_n,
            name=name_c,
            role=role_c,
            created_at=_now_ms(),
            usn=usn_c or None,
        )
        if not self.kv.set_if_absent(account_key(email_n), json.dumps(account.to_record())):
            if marker is not None:
                self.otp.release_verified(mobile_n, marker)
            raise Conflict()
        _log.info("account created role=%s", role_c)
        return account.public()

    def login(self, *, email: str, password: str, role: str) -> Tuple[str, AccountPublic]:
        email_n = normalize_email(email)
        password = password if isinstance(password, str) else ""
        account = self._load_account(email_n) if email_n else None
        if account is None:
            burn_verification(password)
            raise InvalidCredentials()
        if not verify_password(password, account.password_hash):
            raise InvalidCredentials()
        if account.role != _clean(role).lower():
            raise InvalidCredentials()
        rec = self.sessions.create(email=account.email, role=account.role)
        return rec.token, account.public()

    def verify_session(self, token: Optional[str]) -> AccountPublic:
        rec = self.sessions.get(token or "")
        if rec is None:
            raise Unauthenticated()
        account = self._load_account(rec.email)
        if account is None:
            # Account removed after login: the session is orphaned.
            self.sessions.delete(rec.token)
            raise Unauthenticated()
        return account.public()

    def lookup(self, email: str) -> Optional[AccountPublic]:
        account = self._load_account(email)
        return account.public() if account else None

    def logout(self, token: Optional[str]) -> None:
        if token:
            self.sessions.delete(token)


__all__ = ["AuthService"]
