"""
Identity domain constants, records and simple helpers.

Why:
- Centralize allowed roles and the institutional email rule so the service
  layer and web adapter cannot drift apart.
- Model accounts as explicit records with a fixed JSON mapping instead of
  open-ended dicts; the password hash never leaves `Account`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import os

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "admin"})

DEFAULT_REGISTRATION_DOMAINS = "@gat.ac.in"


def normalize_email(email: object) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def parse_allowed_registration_domains(raw: str | None) -> set[str]:
    """Parse ALLOWED_REGISTRATION_DOMAINS into a normalized set of suffixes.

    Intent:
        - Accept a comma-separated list like "@gat.ac.in, @staff.gat.ac.in".
        - Normalize by trimming whitespace and lowercasing; add a missing "@".
        - Ignore empty entries so accidental trailing commas are harmless.
    """
    if not raw:
        return set()
    items = [part.strip().lower() for part in str(raw).split(",")]
    return {item if item.startswith("@") else f"@{item}" for item in items if item}


def allowed_registration_domains() -> set[str]:
    """Return the configured suffixes, falling back to the institutional default.

    An empty or blank variable does not lift the restriction.
    """
    domains = parse_allowed_registration_domains(os.getenv("ALLOWED_REGISTRATION_DOMAINS"))
    return domains or parse_allowed_registration_domains(DEFAULT_REGISTRATION_DOMAINS)


def is_allowed_registration_email(email: str, allowed_domains: set[str]) -> bool:
    """Return True if the email's domain is in the allowed_domains set.

    Behavior:
        - Split on the last '@' and compare the domain part (including the
          leading '@') in lowercase.
        - Invalid emails (no '@', missing local part or domain) are disallowed.
    """
    normalized = normalize_email(email)
    if "@" not in normalized:
        return False
    local, domain = normalized.rsplit("@", 1)
    if not local or not domain:
        return False
    return f"@{domain}" in allowed_domains


@dataclass(frozen=True)
class AccountPublic:
    """Account as returned to clients: everything except the password hash."""

    email: str
    mobile: str
    name: str
    role: str
    created_at: int
    usn: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "email": self.email,
            "mobile": self.mobile,
            "name": self.name,
            "role": self.role,
            # Browser clients read `userType`.
            "userType": self.role,
            "createdAt": self.created_at,
        }
        if self.usn is not None:
            data["usn"] = self.usn
        return data

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class Account:
    email: str
    password_hash: str
    mobile: str
    name: str
    role: str
    created_at: int
    usn: Optional[str] = None

    def public(self) -> AccountPublic:
        return AccountPublic(
            email=self.email,
            mobile=self.mobile,
            name=self.name,
            role=self.role,
            created_at=self.created_at,
            usn=self.usn,
        )

    def to_record(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "email": self.email,
            "passwordHash": self.password_hash,
            "mobile": self.mobile,
            "name": self.name,
            "role": self.role,
            "createdAt": self.created_at,
        }
        if self.usn is not None:
            data["usn"] = self.usn
        return data

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            email=str(data["email"]),
            password_hash=str(data["passwordHash"]),
            mobile=str(data.get("mobile") or ""),
            name=str(data.get("name") or ""),
            role=str(data["role"]),
            created_at=int(data.get("createdAt") or 0),
            usn=data.get("usn"),
        )


def account_key(email: str) -> str:
    return f"user:{normalize_email(email)}"


__all__ = [
    "ALLOWED_ROLES",
    "DEFAULT_REGISTRATION_DOMAINS",
    "Account",
    "AccountPublic",
    "account_key",
    "allowed_registration_domains",
    "is_allowed_registration_email",
    "normalize_email",
    "parse_allowed_registration_domains",
]
