"""
Supabase Storage bootstrap helpers.

Intent:
    Ensure the private certificates bucket exists on startup (dev/stage friendly).

Security & Safety:
    - Controlled by `AUTO_CREATE_STORAGE_BUCKETS=true` env flag.
    - Requires server-side `SUPABASE_SERVICE_ROLE_KEY`.
    - Idempotent: lists buckets first, creates only missing ones. Buckets are
      always created private.

Usage:
    Call `ensure_buckets_from_env()` after wiring the storage adapter.
"""
from __future__ import annotations

import logging
import os
from typing import Iterable

import requests

from .config import get_certificates_bucket

_log = logging.getLogger("certportal.storage")

# (connect, read) seconds for Storage admin calls.
_HTTP_TIMEOUT = (3, 10)


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def _headers(key: str) -> dict:
    return {"apikey": key, "Authorization": f"Bearer {key}"}


def _list_buckets(base_url: str, key: str) -> list[dict]:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    try:
        resp = requests.get(url, headers=_headers(key), timeout=_HTTP_TIMEOUT)
    except requests.RequestException as exc:
        _log.warning("list buckets failed: error=%s", type(exc).__name__)
        return []
    _log.debug("GET /storage/v1/bucket status=%s", resp.status_code)
    try:
        data = resp.json()
    except ValueError:
        return []
    return data if isinstance(data, list) else []


def _create_bucket(base_url: str, key: str, name: str) -> bool:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    headers = {**_headers(key), "Content-Type": "application/json"}
    try:
        resp = requests.post(url, headers=headers, json={"name": name, "public": False}, timeout=_HTTP_TIMEOUT)
    except requests.RequestException as exc:
        _log.warning("create bucket '%s' failed: error=%s", name, type(exc).__name__)
        return False
    if resp.status_code >= 300:
        _log.warning("create bucket '%s' failed: status=%s body=%s", name, resp.status_code, resp.text)
        return False
    _log.info("Created storage bucket: %s", name)
    return True


def ensure_buckets(base_url: str, key: str, buckets: Iterable[str]) -> bool:
    """Ensure each bucket in `buckets` exists; create if missing.

    Parameters:
        base_url: Supabase API base (e.g., http://127.0.0.1:54321)
        key: Service role key for server-side administration
        buckets: Bucket names to ensure exist (always private)

    Returns:
        True when every requested bucket exists afterwards, False otherwise.
        Failures are logged, never raised.
    """
    wanted = {name for name in buckets if name}
    existing = {str(it.get("name") or it.get("id") or "") for it in _list_buckets(base_url, key)}
    ok = True
    for name in sorted(wanted - existing):
        ok = _create_bucket(base_url, key, name) and ok
    return ok


def ensure_buckets_from_env() -> bool:
    """Read env and ensure the certificates bucket when AUTO_CREATE_STORAGE_BUCKETS=true.

    Env:
        - AUTO_CREATE_STORAGE_BUCKETS=true (opt-in)
        - SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY (server-side credentials)
        - CERTIFICATES_BUCKET (default: certificates)
    """
    if not _env_flag("AUTO_CREATE_STORAGE_BUCKETS"):
        return False
    base = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not base or not key:
        return False
    return ensure_buckets(base, key, [get_certificates_bucket()])


__all__ = ["ensure_buckets_from_env", "ensure_buckets"]
