"""Certificate request workflow: create, list, approve, reject.

Why:
    Every state change is a compare-and-set from the exact pending snapshot to
    the new record. Two admins acting on the same request cannot both win, and
    a terminal record is never rewritten.

Approve ordering:
    1. read the pending snapshot
    2. upload the artifact
    3. CAS snapshot -> approved record (carries the artifact reference)
    If step 3 loses or fails, the uploaded object is discarded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import logging
import secrets
import time

from identity_access.domain import AccountPublic
from shared.errors import Forbidden, InvalidState, NotFound, UpstreamFailure, ValidationError
from storage.config import get_certificate_max_upload_bytes
from storage.kv import KeyValueStore

from .artifacts import ArtifactStore
from .domain import ALLOWED_STATUSES, STATUS_PENDING, CertificateRequest, request_key

_log = logging.getLogger("certportal.certificates.workflow")

_PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
_ID_ATTEMPTS = 8


def _now_ms() -> int:
    return int(time.time() * 1000)


def _clean(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _newest_first(items: List[CertificateRequest]) -> List[CertificateRequest]:
    return sorted(items, key=lambda r: (r.requested_at, r.id), reverse=True)


def _require_admin(account: AccountPublic) -> None:
    if not account.is_admin:
        raise Forbidden()


@dataclass
class RequestWorkflow:
    kv: KeyValueStore
    artifacts: ArtifactStore
    lookup_account: Callable[[str], Optional[AccountPublic]]

    # --- reads -------------------------------------------------------------------

    def _load(self, request_id: str) -> Tuple[str, CertificateRequest]:
        rid = _clean(request_id)
        if not rid:
            raise ValidationError("missing_fields", "Request ID is required")
        raw = self.kv.get(request_key(rid))
        if raw is None:
            raise NotFound()
        try:
            return raw, CertificateRequest.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            _log.warning("unreadable request record id=%s error=%s", rid, type(exc).__name__)
            raise UpstreamFailure("storage_failure", "Stored request is unreadable") from exc

    def _all(self) -> List[CertificateRequest]:
        out: List[CertificateRequest] = []
        for key, raw in self.kv.scan_prefix("request:"):
            try:
                out.append(CertificateRequest.from_json(raw))
            except (ValueError, KeyError, TypeError):
                _log.warning("skipping unreadable record key=%s", key)
        return out

    def get(self, request_id: str) -> CertificateRequest:
        return self._load(request_id)[1]

    # --- use cases ---------------------------------------------------------------

    def create(
        self,
        account: AccountPublic,
        certificate_type: str,
        purpose: str = "",
        additional_info: str = "",
    ) -> CertificateRequest:
        ctype = _clean(certificate_type)
        if not ctype:
            raise ValidationError("certificate_type_required", "Certificate type is required")
        for _ in range(_ID_ATTEMPTS):
            now = _now_ms()
            rec = CertificateRequest(
                id=f"REQ{now}{secrets.token_hex(3)}",
                student_email=account.email,
                certificate_type=ctype,
                purpose=_clean(purpose),
                additional_info=_clean(additional_info),
                status=STATUS_PENDING,
                requested_at=now,
                updated_at=now,
            )
            if self.kv.set_if_absent(request_key(rec.id), rec.to_json()):
                _log.info("request created id=%s type=%s", rec.id, ctype)
                return rec
        raise UpstreamFailure("id_allocation_failed", "Could not allocate a request id")

    def list_mine(self, account: AccountPublic) -> List[CertificateRequest]:
        return _newest_first([r for r in self._all() if r.student_email == account.email])

    def list_all(
        self,
        account: AccountPublic,
        status: Optional[str] = None,
        q: Optional[str] = None,
    ) -> List[Dict[str, object]]:
        """Admin listing joined with student name, USN and mobile.

        `status` filters by state (`all` or empty means no filter); `q` matches
        case-insensitively against student name, USN and request id.
        """
        _require_admin(account)
        status_c = _clean(status).lower()
        if status_c and status_c != "all" and status_c not in ALLOWED_STATUSES:
            raise ValidationError("invalid_status", "Unknown status filter")
        needle = _clean(q).lower()
        students: Dict[str, Optional[AccountPublic]] = {}
        rows: List[Dict[str, object]] = []
        for rec in _newest_first(self._all()):
            if status_c and status_c != "all" and rec.status != status_c:
                continue
            if rec.student_email not in students:
                students[rec.student_email] = self.lookup_account(rec.student_email)
            student = students[rec.student_email]
            name = student.name if student else "Unknown"
            usn = (student.usn if student else None) or "N/A"
            mobile = student.mobile if student else "N/A"
            if needle and not any(needle in v.lower() for v in (name, usn, rec.id)):
                continue
            row: Dict[str, object] = rec.to_dict()
            row.update({"studentName": name, "studentUSN": usn, "studentMobile": mobile})
            rows.append(row)
        return rows

    def approve(
        self,
        account: AccountPublic,
        request_id: str,
        artifact: bytes,
        content_type: str,
        remarks: str = "",
    ) -> CertificateRequest:
        _require_admin(account)
        raw, current = self._load(request_id)
        if not current.is_pending:
            raise InvalidState()
        if not artifact:
            raise ValidationError("invalid_artifact", "Certificate file is required")
        if (content_type or "").split(";")[0].strip().lower() not in _PDF_CONTENT_TYPES:
            raise ValidationError("invalid_artifact", "Certificate must be a PDF")
        if len(artifact) > get_certificate_max_upload_bytes():
            raise ValidationError("artifact_too_large", "Certificate file is too large")

        ref = self.artifacts.store(current.id, artifact, "application/pdf")
        updated = current.approved(
            by=account.email,
            at=_now_ms(),
            url=ref.url,
            key=ref.key,
            url_expires_at=ref.expires_at,
            remarks=_clean(remarks),
        )
        try:
            won = self.kv.compare_and_set(request_key(current.id), raw, updated.to_json())
        except Exception as exc:
            self.artifacts.discard(ref)
            _log.warning("approve write failed: id=%s error=%s", current.id, type(exc).__name__)
            raise UpstreamFailure("storage_failure", "Failed to update request") from exc
        if not won:
            self.artifacts.discard(ref)
            raise InvalidState()
        _log.info("request approved id=%s", current.id)
        return updated

    def reject(self, account: AccountPublic, request_id: str, reason: str) -> CertificateRequest:
        _require_admin(account)
        raw, current = self._load(request_id)
        if not current.is_pending:
            raise InvalidState()
        reason_c = _clean(reason)
        if not reason_c:
            raise ValidationError("reason_required", "Rejection reason is required")
        updated = current.rejected(by=account.email, at=_now_ms(), reason=reason_c)
        if not self.kv.compare_and_set(request_key(current.id), raw, updated.to_json()):
            raise InvalidState()
        _log.info("request rejected id=%s", current.id)
        return updated


__all__ = ["RequestWorkflow"]
