"""
Configuration and startup security checks for the certificate portal.

Why: Prevent accidental insecure deployments (dev OTP fallback, in-memory
state, dummy keys) while keeping local development permissive.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _flag(name: str) -> bool:
    return (os.getenv(name, "") or "").strip().lower() == "true"


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod-like CERTPORTAL_ENV only):
    - Supabase Service Role key must be set and not a dummy placeholder.
    - SUPABASE_URL must use https.
    - Database DSNs must not disable TLS.
    - Sessions and requests must not live in process memory (KV_BACKEND=db).
    - OTP codes must never be returned to clients; Twilio must be configured.
    """

    env = os.getenv("CERTPORTAL_ENV", "dev")
    if not _is_prod_like(env):
        return

    # 1) Supabase Service Role key
    srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    url = (os.getenv("SUPABASE_URL", "") or "").strip().lower()
    if not url.startswith("https://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production.")

    # 2) Postgres TLS
    for key in ("KV_DATABASE_URL", "DATABASE_URL"):
        if "sslmode=disable" in os.getenv(key, ""):
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 3) Durable, shared state
    backend = (os.getenv("KV_BACKEND") or "memory").strip().lower()
    if backend != "db":
        raise SystemExit("Refusing to start: KV_BACKEND=db is mandatory in production/staging.")

    # 4) OTP delivery
    if _flag("OTP_DEV_CODE_FALLBACK"):
        raise SystemExit("Refusing to start: OTP_DEV_CODE_FALLBACK must be false in production/staging.")
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
        if not (os.getenv(name) or "").strip():
            raise SystemExit(f"Refusing to start: {name} is required in production/staging.")
