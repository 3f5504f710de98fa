"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend and give every test a fresh,
hermetic set of collaborators (in-memory KV store, fake SMS gateway, fake
object storage) so no test touches Twilio, Supabase or Postgres.
"""
import os
import sys
from pathlib import Path

import pytest

# Ensure modules in backend/ and the test helpers are importable across tests.
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

# Importing web.main wires adapters from env; keep that hermetic too.
os.environ["CERTPORTAL_ENV"] = "dev"
os.environ["KV_BACKEND"] = "memory"
os.environ["AUTO_CREATE_STORAGE_BUCKETS"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
for _var in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN"):
    os.environ.pop(_var, None)

from utils.fakes import FakeObjectStorage, FakeSmsGateway  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_feature_flags(monkeypatch: pytest.MonkeyPatch):
    """Start every test from the documented defaults."""
    for var in (
        "ALLOWED_REGISTRATION_DOMAINS",
        "SESSION_TTL_SECONDS",
        "SIGNUP_REQUIRE_VERIFIED_MOBILE",
        "OTP_DEV_CODE_FALLBACK",
        "CERTIFICATES_BUCKET",
        "CERTIFICATE_URL_TTL_SECONDS",
        "CERTIFICATE_MAX_UPLOAD_BYTES",
        "SUPABASE_PUBLIC_URL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CERTPORTAL_ENV", "dev")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    yield


@pytest.fixture
def kv():
    from storage.kv import InMemoryKeyValueStore

    return InMemoryKeyValueStore()


@pytest.fixture
def sms():
    return FakeSmsGateway()


@pytest.fixture
def object_storage():
    return FakeObjectStorage()


@pytest.fixture(autouse=True)
def _wired(kv, sms, object_storage):
    """Inject the per-test fakes into the HTTP layer's wiring."""
    from web import wiring

    wiring.set_kv(kv)
    wiring.set_sms_gateway(sms)
    wiring.set_object_storage(object_storage)
    yield
    wiring.reset()
