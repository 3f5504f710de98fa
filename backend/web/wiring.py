"""
Adapter wiring for the HTTP layer.

Why:
    Routes depend on three collaborators (key/value store, SMS gateway, object
    storage). They are built once from the environment and can be replaced by
    tests through the setters below. Unconfigured collaborators fall back to
    in-memory or Null adapters so development works without any services.
"""
from __future__ import annotations

import logging
import os
from urllib.parse import urlparse

from certificates.artifacts import ArtifactStore
from certificates.workflow import RequestWorkflow
from identity_access.otp import NullSmsGateway, OTPService, SmsGateway
from identity_access.service import AuthService
from identity_access.sms_twilio import TwilioSmsGateway
from identity_access.stores import SessionStore
from storage.config import get_storage_timeout_seconds
from storage.kv import InMemoryKeyValueStore, KeyValueStore
from storage.ports import NullStorageAdapter, ObjectStorage

logger = logging.getLogger("certportal.web")

_KV: KeyValueStore | None = None
_SMS: SmsGateway | None = None
_STORAGE: ObjectStorage | None = None


def _build_kv() -> KeyValueStore:
    backend = (os.getenv("KV_BACKEND") or "memory").strip().lower()
    if backend == "db":
        from storage.kv_db import DBKeyValueStore

        store = DBKeyValueStore()
        store.ensure_schema()
        logger.info("KV store wired: postgres")
        return store
    return InMemoryKeyValueStore()


def _build_sms() -> SmsGateway:
    gateway = TwilioSmsGateway.from_env()
    if gateway is None:
        logger.info("SMS gateway not configured; OTPs use the dev fallback when enabled")
        return NullSmsGateway()
    return gateway


def _build_storage() -> ObjectStorage:
    """Supabase Storage adapter when SUPABASE_URL and the service key are set.

    Prefers the official client; falls back to a bare storage3 client for local
    hosts where the service key is not a JWT.
    """
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        return NullStorageAdapter()

    from storage.storage_supabase import SupabaseStorageAdapter

    timeout = get_storage_timeout_seconds()
    try:
        from supabase import ClientOptions, create_client

        client = create_client(url, key, options=ClientOptions(storage_client_timeout=timeout))
        logger.info("Storage adapter wired: Supabase")
        return SupabaseStorageAdapter(client)
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s", exc.__class__.__name__)

    host = (urlparse(url).hostname or "").lower()
    if host not in {"127.0.0.1", "localhost"}:
        return NullStorageAdapter()
    from storage3 import SyncStorageClient

    headers = {"Authorization": f"Bearer {key}", "apikey": key}
    client = SyncStorageClient(f"{url.rstrip('/')}/storage/v1", headers, timeout=timeout)
    logger.info("Storage adapter wired: storage3 (local)")
    return SupabaseStorageAdapter(client)


def get_kv() -> KeyValueStore:
    global _KV
    if _KV is None:
        _KV = _build_kv()
    return _KV


def set_kv(store: KeyValueStore | None) -> None:
    global _KV
    _KV = store


def get_sms_gateway() -> SmsGateway:
    global _SMS
    if _SMS is None:
        _SMS = _build_sms()
    return _SMS


def set_sms_gateway(gateway: SmsGateway | None) -> None:
    global _SMS
    _SMS = gateway


def get_object_storage() -> ObjectStorage:
    global _STORAGE
    if _STORAGE is None:
        _STORAGE = _build_storage()
    return _STORAGE


def set_object_storage(storage: ObjectStorage | None) -> None:
    global _STORAGE
    _STORAGE = storage


def reset() -> None:
    """Drop all wired collaborators; the next access rebuilds them from env."""
    set_kv(None)
    set_sms_gateway(None)
    set_object_storage(None)


def auth_service() -> AuthService:
    kv = get_kv()
    return AuthService(kv=kv, sessions=SessionStore(kv), otp=otp_service())


def otp_service() -> OTPService:
    return OTPService(get_kv(), get_sms_gateway())


def request_workflow() -> RequestWorkflow:
    return RequestWorkflow(
        kv=get_kv(),
        artifacts=ArtifactStore(get_object_storage()),
        lookup_account=auth_service().lookup,
    )


def wire_on_startup() -> None:
    """Build collaborators eagerly and provision the bucket when requested."""
    get_kv()
    get_sms_gateway()
    get_object_storage()
    from storage.bootstrap import ensure_buckets_from_env

    ensure_buckets_from_env()


__all__ = [
    "auth_service",
    "get_kv",
    "get_object_storage",
    "get_sms_gateway",
    "otp_service",
    "request_workflow",
    "reset",
    "set_kv",
    "set_object_storage",
    "set_sms_gateway",
    "wire_on_startup",
]
