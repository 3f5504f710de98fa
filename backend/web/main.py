"GAT Certificate Portal"
from __future__ import annotations

import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.errors import PortalError


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via CERTPORTAL_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("CERTPORTAL_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv  # noqa: E402

if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
from web import config as _cfg  # noqa: E402

_cfg.ensure_secure_config_on_startup()

from web import wiring  # noqa: E402
from web.routes.auth import auth_router  # noqa: E402
from web.routes.certificates import certificates_router  # noqa: E402

logger = logging.getLogger("certportal.web")

_NO_STORE = {"Cache-Control": "private, no-store"}


def _environment() -> str:
    return os.getenv("CERTPORTAL_ENV", "dev").lower()


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "") or ""
    return [o.strip() for o in raw.split(",") if o.strip()]


app = FastAPI(title="GAT Certificate Portal", description="Certificate request workflow API", version="0.1.0")

if _cors_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Session-Token"],
    )

app.include_router(auth_router)
app.include_router(certificates_router)

# Build adapters early so the first request does not pay for wiring.
wiring.wire_on_startup()

# --- Error mapping ---------------------------------------------------------------


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code, headers=_NO_STORE)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Fold FastAPI's 422 into the same 400 shape services use.
    fields = sorted({str(err.get("loc", ["", ""])[-1]) for err in exc.errors()})
    detail = "Invalid input: " + ", ".join(f for f in fields if f) if fields else "Invalid input"
    return JSONResponse(
        {"success": False, "error": "bad_request", "detail": detail}, status_code=400, headers=_NO_STORE
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        {"success": False, "error": "internal_error", "detail": "Internal server error"},
        status_code=500,
        headers=_NO_STORE,
    )


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # JSON only: nothing may be framed, scripted or sniffed.
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if _environment() in {"prod", "production"}:
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    if request.url.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", "private, no-store")
    return response


@app.get("/health")
async def health():
    return {"status": "healthy"}
