"""
Helpers to generate standardized storage keys for certificate artifacts.

Why:
    Keep path shapes consistent and provide simple, testable sanitization that
    avoids path traversal and exotic characters while remaining readable.

Conventions:
    - Certificates: certificates/{request_id}/{epoch_ms}-{uuid}.{ext}

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments.
    - Extensions are lowercased and filtered to alphanumeric + dot.
"""
from __future__ import annotations

import os
import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def _sanitize_ext(ext: str | None, default_ext: str = "") -> str:
    ext = (ext or default_ext or "").lower()
    if ext and "." in ext and not ext.startswith("."):
        _, ext = os.path.splitext(ext)
    ext = "".join(ch for ch in ext if ch.isalnum() or ch == ".")
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def make_certificate_key(*, request_id: str, epoch_ms: int, uuid_hex: str, ext: str = ".pdf") -> str:
    """Build a storage key for an approved certificate.

    The timestamp/uuid suffix keeps keys unique when an approval is retried
    after a failed attempt left an object behind.

    Returns: certificates/{request_id}/{epoch_ms}-{uuid}.{ext}
    """
    rid = _sanitize_segment(request_id, fallback="request")
    hexpart = (uuid_hex or "").strip() or "file"
    return f"certificates/{rid}/{int(epoch_ms)}-{hexpart}{_sanitize_ext(ext, default_ext='.pdf')}"


__all__ = ["make_certificate_key"]
