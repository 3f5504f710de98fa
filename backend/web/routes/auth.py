"""
Auth API routes: OTP, signup, login, session verification and logout.

Why:
    Thin HTTP adapter over `OTPService` and `AuthService`. Handlers parse the
    JSON body, call the service and shape the response; failures surface as
    `PortalError`s which the app-level handler maps to `{success, error, detail}`.

Security:
    - The session token travels in the `X-Session-Token` header, never in a
      cookie or URL.
    - All responses are `Cache-Control: private, no-store`.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from web import wiring

auth_router = APIRouter(prefix="/api", tags=["Auth"])
logger = logging.getLogger("certportal.web.auth")

SESSION_HEADER = "X-Session-Token"


def _private_response(body: dict, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


class _Payload(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class SendOtpPayload(_Payload):
    mobile: str | None = None


class VerifyOtpPayload(_Payload):
    mobile: str | None = None
    otp: str | None = None
    # Older clients post the code as `code`.
    code: str | None = None


class SignupPayload(_Payload):
    email: str | None = Field(default=None, max_length=320)
    password: str | None = Field(default=None, max_length=256)
    mobile: str | None = Field(default=None, max_length=32)
    name: str | None = Field(default=None, max_length=200)
    role: str | None = None
    userType: str | None = None
    usn: str | None = Field(default=None, max_length=32)


class LoginPayload(_Payload):
    email: str | None = None
    password: str | None = None
    role: str | None = None
    userType: str | None = None


@auth_router.post("/send-otp")
def send_otp(payload: SendOtpPayload):
    """Issue a one-time code for a mobile number.

    `devOtp` is present only when no SMS gateway is configured and the dev
    fallback is enabled.
    """
    result = wiring.otp_service().send(payload.mobile or "")
    body = {"success": True, "message": "OTP sent successfully"}
    if result.dev_code is not None:
        body["devOtp"] = result.dev_code
        body["message"] = "SMS service not configured. Use the code shown."
    return _private_response(body)


@auth_router.post("/verify-otp")
def verify_otp(payload: VerifyOtpPayload):
    wiring.otp_service().verify(payload.mobile or "", payload.otp or payload.code or "")
    return _private_response({"success": True, "message": "OTP verified successfully"})


@auth_router.post("/signup", status_code=201)
def signup(payload: SignupPayload):
    wiring.auth_service().signup(
        email=payload.email or "",
        password=payload.password or "",
        mobile=payload.mobile or "",
        name=payload.name or "",
        role=payload.role or payload.userType or "",
        usn=payload.usn,
    )
    return _private_response({"success": True, "message": "User created successfully"}, status_code=201)


@auth_router.post("/login")
def login(payload: LoginPayload):
    token, account = wiring.auth_service().login(
        email=payload.email or "",
        password=payload.password or "",
        role=payload.role or payload.userType or "",
    )
    return _private_response({"success": True, "token": token, "user": account.to_dict()})


@auth_router.post("/verify-session")
def verify_session(x_session_token: str | None = Header(default=None)):
    account = wiring.auth_service().verify_session(x_session_token)
    return _private_response({"success": True, "user": account.to_dict()})


@auth_router.post("/logout")
def logout(x_session_token: str | None = Header(default=None)):
    wiring.auth_service().logout(x_session_token)
    return _private_response({"success": True, "message": "Logged out"})
