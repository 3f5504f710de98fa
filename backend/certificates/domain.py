"""
Certificate request record and its status values.

The record is stored as one JSON object under `request:<id>`. Transitions are
applied by writing a new serialized record with compare-and-set against the
exact pending snapshot, so serialization must be deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional
import json

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

ALLOWED_STATUSES = frozenset({STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED})

# Certificate types offered by the portal UI. Free text is accepted, these are hints.
KNOWN_CERTIFICATE_TYPES = ("bonafide", "internship", "transfer", "conduct", "other")


def request_key(request_id: str) -> str:
    return f"request:{request_id}"


@dataclass(frozen=True)
class CertificateRequest:
    id: str
    student_email: str
    certificate_type: str
    purpose: str
    additional_info: str
    status: str
    requested_at: int
    updated_at: int
    certificate_url: Optional[str] = None
    certificate_key: Optional[str] = None
    certificate_url_expires_at: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[int] = None
    remarks: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[int] = None
    rejection_reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    def approved(
        self,
        *,
        by: str,
        at: int,
        url: str,
        key: str,
        url_expires_at: Optional[str],
        remarks: str,
    ) -> "CertificateRequest":
        return replace(
            self,
            status=STATUS_APPROVED,
            updated_at=at,
            certificate_url=url,
            certificate_key=key,
            certificate_url_expires_at=url_expires_at,
            approved_by=by,
            approved_at=at,
            remarks=remarks,
        )

    def rejected(self, *, by: str, at: int, reason: str) -> "CertificateRequest":
        return replace(
            self,
            status=STATUS_REJECTED,
            updated_at=at,
            rejected_by=by,
            rejected_at=at,
            rejection_reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "studentEmail": self.student_email,
            "certificateType": self.certificate_type,
            "purpose": self.purpose,
            "additionalInfo": self.additional_info,
            "status": self.status,
            "requestedAt": self.requested_at,
            "updatedAt": self.updated_at,
        }
        if self.status == STATUS_APPROVED:
            data.update(
                {
                    "certificateUrl": self.certificate_url,
                    "certificateKey": self.certificate_key,
                    "certificateUrlExpiresAt": self.certificate_url_expires_at,
                    "approvedBy": self.approved_by,
                    "approvedAt": self.approved_at,
                    "remarks": self.remarks,
                }
            )
        elif self.status == STATUS_REJECTED:
            data.update(
                {
                    "rejectedBy": self.rejected_by,
                    "rejectedAt": self.rejected_at,
                    "rejectionReason": self.rejection_reason,
                }
            )
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "CertificateRequest":
        d = json.loads(raw)
        return cls(
            id=str(d["id"]),
            student_email=str(d["studentEmail"]),
            certificate_type=str(d["certificateType"]),
            purpose=str(d.get("purpose") or ""),
            additional_info=str(d.get("additionalInfo") or ""),
            status=str(d["status"]),
            requested_at=int(d["requestedAt"]),
            updated_at=int(d.get("updatedAt") or d["requestedAt"]),
            certificate_url=d.get("certificateUrl"),
            certificate_key=d.get("certificateKey"),
            certificate_url_expires_at=d.get("certificateUrlExpiresAt"),
            approved_by=d.get("approvedBy"),
            approved_at=d.get("approvedAt"),
            remarks=d.get("remarks"),
            rejected_by=d.get("rejectedBy"),
            rejected_at=d.get("rejectedAt"),
            rejection_reason=d.get("rejectionReason"),
        )


__all__ = [
    "ALLOWED_STATUSES",
    "KNOWN_CERTIFICATE_TYPES",
    "STATUS_APPROVED",
    "STATUS_PENDING",
    "STATUS_REJECTED",
    "CertificateRequest",
    "request_key",
]
