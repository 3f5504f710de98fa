"""
Auth service: signup rules, uniform login failures, sessions and logout.
"""
from __future__ import annotations

import json
import threading

import pytest

from identity_access import stores as stores_mod
from identity_access.otp import OTPService
from identity_access.service import AuthService
from identity_access.stores import SessionStore
from shared.errors import Conflict, InvalidCredentials, Unauthenticated, ValidationError


@pytest.fixture
def otp(kv, sms):
    return OTPService(kv, sms)


@pytest.fixture
def auth(kv, otp):
    return AuthService(kv=kv, sessions=SessionStore(kv), otp=otp)


def _alice(**overrides):
    data = dict(
        email="alice@gat.ac.in",
        password="s3cret-pass",
        mobile="+919876543210",
        name="Alice",
        role="student",
        usn="1GA21CS001",
    )
    data.update(overrides)
    return data


def test_signup_persists_hashed_account(auth, kv):
    public = auth.signup(**_alice())
    assert public.email == "alice@gat.ac.in"
    assert public.usn == "1GA21CS001"
    record = json.loads(kv.get("user:alice@gat.ac.in"))
    assert record["passwordHash"] != "s3cret-pass"
    assert record["passwordHash"].startswith("$2")
    assert "passwordHash" not in public.to_dict()


def test_signup_normalizes_email(auth, kv):
    auth.signup(**_alice(email="  Alice@GAT.ac.in "))
    assert kv.get("user:alice@gat.ac.in") is not None


def test_duplicate_signup_is_conflict(auth):
    auth.signup(**_alice())
    with pytest.raises(Conflict) as exc:
        auth.signup(**_alice(password="another"))
    assert exc.value.code == "account_exists"


def test_racing_signups_have_one_winner(auth):
    barrier = threading.Barrier(4)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt(i: int) -> None:
        barrier.wait()
        try:
            auth.signup(**_alice(name=f"Alice {i}"))
            result = "ok"
        except Conflict:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 3


@pytest.mark.parametrize("missing", ["email", "password", "mobile", "name", "role"])
def test_signup_requires_all_fields(auth, missing):
    with pytest.raises(ValidationError) as exc:
        auth.signup(**_alice(**{missing: ""}))
    assert exc.value.code == "missing_fields"


def test_signup_rejects_unknown_role(auth):
    with pytest.raises(ValidationError) as exc:
        auth.signup(**_alice(role="teacher"))
    assert exc.value.code == "invalid_role"


def test_signup_rejects_outside_domain(auth):
    with pytest.raises(ValidationError) as exc:
        auth.signup(**_alice(email="alice@gmail.com"))
    assert exc.value.code == "invalid_email_domain"


def test_signup_domain_list_is_configurable(auth, monkeypatch):
    monkeypatch.setenv("ALLOWED_REGISTRATION_DOMAINS", "staff.gat.ac.in, @gat.ac.in")
    auth.signup(**_alice(email="hod@staff.gat.ac.in", role="admin"))
    with pytest.raises(ValidationError):
        auth.signup(**_alice(email="bob@example.org"))


def test_usn_is_kept_only_for_students(auth):
    admin = auth.signup(**_alice(email="admin@gat.ac.in", role="admin", usn="IGNORED"))
    assert admin.usn is None
    assert "usn" not in admin.to_dict()


def test_signup_can_require_verified_mobile(auth, sms, otp, monkeypatch):
    monkeypatch.setenv("SIGNUP_REQUIRE_VERIFIED_MOBILE", "true")
    with pytest.raises(ValidationError) as exc:
        auth.signup(**_alice())
    assert exc.value.code == "mobile_not_verified"
    otp.send("+919876543210")
    otp.verify("+919876543210", sms.last_code())
    auth.signup(**_alice())
    # The marker is consumed by the first signup.
    with pytest.raises(ValidationError):
        auth.signup(**_alice(email="alice2@gat.ac.in"))


def test_conflicting_signup_keeps_mobile_verification(auth, sms, otp, monkeypatch):
    monkeypatch.setenv("SIGNUP_REQUIRE_VERIFIED_MOBILE", "true")
    otp.send("+919876543210")
    otp.verify("+919876543210", sms.last_code())
    auth.signup(**_alice())
    otp.send("+919876543210")
    otp.verify("+919876543210", sms.last_code())
    with pytest.raises(Conflict):
        auth.signup(**_alice())
    # The verification survives the failed attempt and is used by the next signup.
    auth.signup(**_alice(email="alice2@gat.ac.in"))
    with pytest.raises(ValidationError):
        auth.signup(**_alice(email="alice3@gat.ac.in"))


def test_login_returns_token_and_public_account(auth):
    auth.signup(**_alice())
    token, account = auth.login(email="alice@gat.ac.in", password="s3cret-pass", role="student")
    assert len(token) >= 40
    assert account.name == "Alice"
    assert auth.verify_session(token).email == "alice@gat.ac.in"


@pytest.mark.parametrize(
    "email,password,role",
    [
        ("alice@gat.ac.in", "wrong", "student"),
        ("alice@gat.ac.in", "s3cret-pass", "admin"),
        ("nobody@gat.ac.in", "s3cret-pass", "student"),
        ("", "", ""),
    ],
)
def test_login_failures_are_indistinguishable(auth, email, password, role):
    auth.signup(**_alice())
    with pytest.raises(InvalidCredentials) as exc:
        auth.login(email=email, password=password, role=role)
    assert exc.value.code == "invalid_credentials"


def test_tokens_are_unique_per_login(auth):
    auth.signup(**_alice())
    t1, _ = auth.login(email="alice@gat.ac.in", password="s3cret-pass", role="student")
    t2, _ = auth.login(email="alice@gat.ac.in", password="s3cret-pass", role="student")
    assert t1 != t2


def test_verify_session_rejects_unknown_and_missing_tokens(auth):
    with pytest.raises(Unauthenticated):
        auth.verify_session("not-a-token")
    with pytest.raises(Unauthenticated):
        auth.verify_session(None)


def test_logout_is_idempotent(auth):
    auth.signup(**_alice())
    token, _ = auth.login(email="alice@gat.ac.in", password="s3cret-pass", role="student")
    auth.logout(token)
    auth.logout(token)
    auth.logout(None)
    with pytest.raises(Unauthenticated):
        auth.verify_session(token)


def test_session_for_deleted_account_is_rejected(auth, kv):
    auth.signup(**_alice())
    token, _ = auth.login(email="alice@gat.ac.in", password="s3cret-pass", role="student")
    kv.delete("user:alice@gat.ac.in")
    with pytest.raises(Unauthenticated):
        auth.verify_session(token)
    assert kv.get(f"session:{token}") is None


def test_session_expires_after_ttl(kv, monkeypatch):
    now = [1_760_000_000_000]
    monkeypatch.setattr(stores_mod, "_now_ms", lambda: now[0])
    store = SessionStore(kv, ttl_seconds=60)
    rec = store.create(email="alice@gat.ac.in", role="student")
    assert store.get(rec.token) is not None
    now[0] += 60_000
    assert store.get(rec.token) is None
    assert kv.get(f"session:{rec.token}") is None


def test_zero_ttl_keeps_sessions_unbounded(kv, monkeypatch):
    monkeypatch.setenv("SESSION_TTL_SECONDS", "0")
    store = SessionStore(kv)
    rec = store.create(email="alice@gat.ac.in", role="student")
    assert rec.expires_at is None
    assert store.get(rec.token).email == "alice@gat.ac.in"


@pytest.mark.parametrize("raw,expected", [("", 604800), ("3600", 3600), ("0", 0), ("-5", 604800), ("abc", 604800)])
def test_session_ttl_env_parsing(monkeypatch, raw, expected):
    monkeypatch.setenv("SESSION_TTL_SECONDS", raw)
    assert stores_mod.session_ttl_seconds() == expected
