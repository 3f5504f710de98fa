"""
Certificate request API: the student/admin flows end to end over HTTP.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from web.main import app

pytestmark = pytest.mark.anyio("asyncio")

PDF = b"%PDF-1.4\n% signed bonafide certificate\n"


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _session(client: httpx.AsyncClient, *, email: str, role: str, name: str, usn: str | None = None) -> dict:
    payload = {
        "email": email,
        "password": "pw-" + name,
        "mobile": "+919876543210",
        "name": name,
        "role": role,
    }
    if usn:
        payload["usn"] = usn
    r = await client.post("/api/signup", json=payload)
    assert r.status_code == 201, r.text
    r = await client.post("/api/login", json={"email": email, "password": "pw-" + name, "role": role})
    assert r.status_code == 200, r.text
    return {"X-Session-Token": r.json()["token"]}


async def test_alice_bonafide_flow(object_storage):
    async with _client() as client:
        alice = await _session(client, email="alice@gat.ac.in", role="student", name="Alice", usn="1GA21CS001")
        admin = await _session(client, email="registrar@gat.ac.in", role="admin", name="Registrar")

        r = await client.post(
            "/api/request-certificate",
            json={"certificateType": "bonafide", "purpose": "Bank loan"},
            headers=alice,
        )
        assert r.status_code == 201
        request_id = r.json()["requestId"]
        assert request_id.startswith("REQ")

        r = await client.get("/api/my-requests", headers=alice)
        mine = r.json()["requests"]
        assert [m["id"] for m in mine] == [request_id]
        assert mine[0]["status"] == "pending"
        assert mine[0]["studentEmail"] == "alice@gat.ac.in"

        r = await client.get("/api/all-requests", headers=admin)
        row = r.json()["requests"][0]
        assert row["studentName"] == "Alice"
        assert row["studentUSN"] == "1GA21CS001"

        r = await client.post(
            "/api/approve-request",
            data={"requestId": request_id, "remarks": "Signed"},
            files={"file": ("bonafide.pdf", PDF, "application/pdf")},
            headers=admin,
        )
        assert r.status_code == 200, r.text
        url = r.json()["certificateUrl"]
        assert url.startswith("https://storage.test/")

        r = await client.get("/api/my-requests", headers=alice)
        done = r.json()["requests"][0]
        assert done["status"] == "approved"
        assert done["certificateUrl"] == url
        assert done["approvedBy"] == "registrar@gat.ac.in"
        assert done["remarks"] == "Signed"
        assert (("certificates", done["certificateKey"])) in object_storage.objects


async def test_reject_then_approve_is_invalid_state(object_storage):
    async with _client() as client:
        alice = await _session(client, email="alice@gat.ac.in", role="student", name="Alice", usn="1GA21CS001")
        admin = await _session(client, email="registrar@gat.ac.in", role="admin", name="Registrar")
        r = await client.post("/api/request-certificate", json={"certificateType": "transfer"}, headers=alice)
        request_id = r.json()["requestId"]

        r = await client.post(
            "/api/reject-request", json={"requestId": request_id, "reason": "Incomplete purpose"}, headers=admin
        )
        assert r.status_code == 200

        r = await client.get("/api/my-requests", headers=alice)
        rec = r.json()["requests"][0]
        assert rec["status"] == "rejected"
        assert rec["rejectionReason"] == "Incomplete purpose"

        r = await client.post(
            "/api/approve-request",
            data={"requestId": request_id},
            files={"file": ("c.pdf", PDF, "application/pdf")},
            headers=admin,
        )
        assert r.status_code == 400
        assert r.json()["error"] == "request_not_pending"
    assert object_storage.objects == {}


async def test_endpoints_require_session():
    async with _client() as client:
        for method, path in (
            ("POST", "/api/request-certificate"),
            ("GET", "/api/my-requests"),
            ("GET", "/api/all-requests"),
            ("POST", "/api/reject-request"),
        ):
            kwargs = {"json": {"certificateType": "bonafide", "requestId": "x", "reason": "y"}} if method == "POST" else {}
            r = await client.request(method, path, headers={"X-Session-Token": "bogus"}, **kwargs)
            assert r.status_code == 401, path
            assert r.json()["error"] == "unauthenticated"
            assert r.headers.get("Cache-Control") == "private, no-store"


async def test_student_cannot_use_admin_endpoints():
    async with _client() as client:
        alice = await _session(client, email="alice@gat.ac.in", role="student", name="Alice", usn="1GA21CS001")
        r = await client.post("/api/request-certificate", json={"certificateType": "bonafide"}, headers=alice)
        request_id = r.json()["requestId"]

        r = await client.get("/api/all-requests", headers=alice)
        assert r.status_code == 403
        assert r.json()["error"] == "forbidden"

        r = await client.post("/api/reject-request", json={"requestId": request_id, "reason": "x"}, headers=alice)
        assert r.status_code == 403

        r = await client.post(
            "/api/approve-request",
            data={"requestId": request_id},
            files={"certificate": ("c.pdf", PDF, "application/pdf")},
            headers=alice,
        )
        assert r.status_code == 403

        r = await client.post("/api/approve-request", data={"requestId": request_id}, headers=alice)
        assert r.status_code == 403
        assert r.json()["error"] == "forbidden"


async def test_request_requires_certificate_type():
    async with _client() as client:
        alice = await _session(client, email="alice@gat.ac.in", role="student", name="Alice", usn="1GA21CS001")
        r = await client.post("/api/request-certificate", json={"purpose": "x"}, headers=alice)
    assert r.status_code == 400
    assert r.json()["error"] == "certificate_type_required"


async def test_approve_validation_errors():
    async with _client() as client:
        alice = await _session(client, email="alice@gat.ac.in", role="student", name="Alice", usn="1GA21CS001")
        admin = await _session(client, email="registrar@gat.ac.in", role="admin", name="Registrar")
        r = await client.post("/api/request-certificate", json={"certificateType": "bonafide"}, headers=alice)
        request_id = r.json()["requestId"]

        r = await client.post("/api/approve-request", data={"requestId": request_id}, headers=admin)
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_artifact"

        r = await client.post(
            "/api/approve-request",
            data={"requestId": request_id},
            files={"file": ("c.png", b"\x89PNG", "image/png")},
            headers=admin,
        )
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_artifact"

        r = await client.post(
            "/api/approve-request",
            data={"requestId": "REQ0missing"},
            files={"file": ("c.pdf", PDF, "application/pdf")},
            headers=admin,
        )
        assert r.status_code == 404
        assert r.json()["error"] == "request_not_found"


async def test_admin_listing_filters():
    async with _client() as client:
        alice = await _session(client, email="alice@gat.ac.in", role="student", name="Alice", usn="1GA21CS001")
        bob = await _session(client, email="bob@gat.ac.in", role="student", name="Bob", usn="1GA21CS002")
        admin = await _session(client, email="registrar@gat.ac.in", role="admin", name="Registrar")
        await client.post("/api/request-certificate", json={"certificateType": "bonafide"}, headers=alice)
        r = await client.post("/api/request-certificate", json={"certificateType": "conduct"}, headers=bob)
        bob_id = r.json()["requestId"]
        await client.post("/api/reject-request", json={"requestId": bob_id, "reason": "Duplicate"}, headers=admin)

        r = await client.get("/api/all-requests", params={"status": "rejected"}, headers=admin)
        assert [x["id"] for x in r.json()["requests"]] == [bob_id]
        r = await client.get("/api/all-requests", params={"q": "alice"}, headers=admin)
        assert [x["studentName"] for x in r.json()["requests"]] == ["Alice"]
        r = await client.get("/api/all-requests", headers=admin)
        assert len(r.json()["requests"]) == 2
