"""
Artifact store: persist an approved certificate and hand out its download URL.

Objects live in a private bucket under `certificates/<request id>/...`; clients
only ever see a signed URL valid for CERTIFICATE_URL_TTL_SECONDS.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import logging
import time
import uuid

from shared.errors import UpstreamFailure
from storage.config import get_certificate_url_ttl_seconds, get_certificates_bucket
from storage.keys import make_certificate_key
from storage.ports import ObjectStorage

_log = logging.getLogger("certportal.certificates.artifacts")


@dataclass(frozen=True)
class ArtifactRef:
    key: str
    url: str
    expires_at: Optional[str] = None


class ArtifactStore:
    def __init__(self, storage: ObjectStorage, *, bucket: str | None = None, url_ttl_seconds: int | None = None):
        self._storage = storage
        self._bucket = bucket or get_certificates_bucket()
        self._ttl = url_ttl_seconds or get_certificate_url_ttl_seconds()

    def store(self, request_id: str, data: bytes, content_type: str = "application/pdf") -> ArtifactRef:
        key = make_certificate_key(
            request_id=request_id,
            epoch_ms=int(time.time() * 1000),
            uuid_hex=uuid.uuid4().hex,
        )
        try:
            self._storage.put_object(bucket=self._bucket, key=key, body=data, content_type=content_type)
        except Exception as exc:
            _log.warning("artifact upload failed: request=%s error=%s", request_id, type(exc).__name__)
            raise UpstreamFailure("storage_failure", "Failed to upload certificate") from exc
        try:
            presigned = self._storage.presign_download(bucket=self._bucket, key=key, expires_in=self._ttl)
            url = presigned["url"]
        except Exception as exc:
            _log.warning("artifact url failed: request=%s error=%s", request_id, type(exc).__name__)
            self.discard(ArtifactRef(key=key, url=""))
            raise UpstreamFailure("storage_failure", "Failed to create certificate URL") from exc
        return ArtifactRef(key=key, url=str(url), expires_at=presigned.get("expires_at"))

    def discard(self, ref: ArtifactRef) -> None:
        """Best-effort delete; failures are logged, never raised."""
        try:
            self._storage.delete_object(bucket=self._bucket, key=ref.key)
        except Exception as exc:
            _log.warning("artifact delete failed: key=%s error=%s", ref.key, type(exc).__name__)


__all__ = ["ArtifactRef", "ArtifactStore"]
