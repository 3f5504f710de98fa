"""
Centralized storage configuration for the certificates bucket.

Intent:
    Provide a single source of truth for the bucket name, signed-URL lifetime,
    upload size limit and client timeout used by the artifact store and the
    Supabase wiring. Prevents drift across modules and enables simple testing.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


CERTIFICATES_BUCKET_DEFAULT = "certificates"
CERTIFICATE_URL_TTL_DEFAULT = 365 * 24 * 60 * 60


def get_certificates_bucket() -> str:
    """Return the configured certificates bucket name.

    Env:
        CERTIFICATES_BUCKET – optional override; otherwise defaults to
        CERTIFICATES_BUCKET_DEFAULT.
    """
    return (os.getenv("CERTIFICATES_BUCKET") or CERTIFICATES_BUCKET_DEFAULT).strip()


def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_certificate_url_ttl_seconds() -> int:
    """Lifetime of signed certificate download URLs (default one year, clamped to one year)."""
    return _parse_int_env(
        "CERTIFICATE_URL_TTL_SECONDS", CERTIFICATE_URL_TTL_DEFAULT, contract_max=CERTIFICATE_URL_TTL_DEFAULT
    )


def get_certificate_max_upload_bytes() -> int:
    """Maximum size of an uploaded certificate PDF (default/clamped 10 MiB)."""
    contract_max = 10 * 1024 * 1024
    return _parse_int_env("CERTIFICATE_MAX_UPLOAD_BYTES", contract_max, contract_max=contract_max)


def get_storage_timeout_seconds() -> int:
    """Timeout for object storage calls (default 10s, clamped to 60s)."""
    return _parse_int_env("STORAGE_TIMEOUT_SECONDS", 10, contract_max=60)


__all__ = [
    "CERTIFICATES_BUCKET_DEFAULT",
    "CERTIFICATE_URL_TTL_DEFAULT",
    "get_certificates_bucket",
    "get_certificate_url_ttl_seconds",
    "get_certificate_max_upload_bytes",
    "get_storage_timeout_seconds",
]
