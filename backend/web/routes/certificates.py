"""
Certificate request API routes.

Permissions:
    - Every endpoint requires a valid session (`X-Session-Token`).
    - Listing all requests, approving and rejecting require the admin role;
      the workflow enforces this, handlers only resolve the caller.
"""
from __future__ import annotations

from fastapi import APIRouter, File, Form, Header, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from identity_access.domain import AccountPublic
from storage.config import get_certificate_max_upload_bytes
from web import wiring

certificates_router = APIRouter(prefix="/api", tags=["Certificates"])


def _private_response(body: dict, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _require_session(token: str | None) -> AccountPublic:
    return wiring.auth_service().verify_session(token)


class CertificateRequestCreate(BaseModel):
    certificateType: str | None = Field(default=None, max_length=100)
    purpose: str | None = Field(default=None, max_length=2000)
    additionalInfo: str | None = Field(default=None, max_length=4000)

    @field_validator("certificateType", "purpose", "additionalInfo", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class RejectPayload(BaseModel):
    requestId: str | None = None
    reason: str | None = Field(default=None, max_length=2000)


@certificates_router.post("/request-certificate", status_code=201)
def request_certificate(payload: CertificateRequestCreate, x_session_token: str | None = Header(default=None)):
    account = _require_session(x_session_token)
    rec = wiring.request_workflow().create(
        account,
        payload.certificateType or "",
        purpose=payload.purpose or "",
        additional_info=payload.additionalInfo or "",
    )
    return _private_response(
        {"success": True, "requestId": rec.id, "message": "Certificate request submitted"}, status_code=201
    )


@certificates_router.get("/my-requests")
def my_requests(x_session_token: str | None = Header(default=None)):
    account = _require_session(x_session_token)
    items = wiring.request_workflow().list_mine(account)
    return _private_response({"success": True, "requests": [r.to_dict() for r in items]})


@certificates_router.get("/all-requests")
def all_requests(status: str | None = None, q: str | None = None, x_session_token: str | None = Header(default=None)):
    """Admin view of every request with student details.

    Query:
        status: pending | approved | rejected | all (default all)
        q: case-insensitive match on student name, USN or request id
    """
    account = _require_session(x_session_token)
    rows = wiring.request_workflow().list_all(account, status=status, q=q)
    return _private_response({"success": True, "requests": rows})


@certificates_router.post("/approve-request")
def approve_request(
    requestId: str = Form(default=""),
    remarks: str = Form(default=""),
    file: UploadFile | None = File(default=None),
    certificate: UploadFile | None = File(default=None),
    x_session_token: str | None = Header(default=None),
):
    account = _require_session(x_session_token)
    upload = file or certificate
    # A missing file is passed as empty bytes; the workflow checks the role before the file.
    data = b""
    content_type = ""
    if upload is not None:
        # Read one byte past the limit so oversize uploads are detected without buffering them whole.
        data = upload.file.read(get_certificate_max_upload_bytes() + 1)
        content_type = upload.content_type or ""
    rec = wiring.request_workflow().approve(
        account,
        requestId,
        data,
        content_type,
        remarks=remarks,
    )
    return _private_response(
        {"success": True, "message": "Request approved successfully", "certificateUrl": rec.certificate_url}
    )


@certificates_router.post("/reject-request")
def reject_request(payload: RejectPayload, x_session_token: str | None = Header(default=None)):
    account = _require_session(x_session_token)
    wiring.request_workflow().reject(account, payload.requestId or "", payload.reason or "")
    return _private_response({"success": True, "message": "Request rejected"})
