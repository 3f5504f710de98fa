"""Password hashing with bcrypt (one-way; hashes are verified, never reversed)."""
from __future__ import annotations

import os

import bcrypt


def _rounds() -> int:
    raw = (os.getenv("BCRYPT_ROUNDS") or "").strip()
    try:
        rounds = int(raw) if raw else 12
    except ValueError:
        rounds = 12
    # bcrypt accepts 4..31; anything below 10 is for tests only.
    return max(4, min(rounds, 16))


def _encode(password: str) -> bytes:
    # bcrypt ignores input beyond 72 bytes and recent releases reject it outright.
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=_rounds())).decode("ascii")


def verify_password(password: str, hash_: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(password), hash_.encode("ascii"))
    except ValueError:
        # Malformed stored hash: treat as mismatch.
        return False


_DUMMY_HASH: str | None = None


def burn_verification(password: str) -> None:
    """Run a bcrypt check against a throwaway hash.

    Used on login for unknown emails so both failure paths do the same work.
    """
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password("certportal-dummy-password")
    verify_password(password, _DUMMY_HASH)


__all__ = ["hash_password", "verify_password", "burn_verification"]
