"""
Object storage port used by the certificate artifact store.

Keep this small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from typing import Any, Dict, Protocol


class ObjectStorage(Protocol):
    """Minimal interface to write, sign and remove binary objects in a bucket.

    Intent:
        Allow the artifact store to persist approved certificates without
        depending on a specific cloud SDK.

    Permissions:
        Implementations must use server-side credentials; buckets stay private
        and clients only ever receive signed URLs.
    """

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None: ...

    def presign_download(self, *, bucket: str, key: str, expires_in: int) -> Dict[str, Any]: ...

    def delete_object(self, *, bucket: str, key: str) -> None: ...


class NullStorageAdapter:
    """Fallback adapter that signals the storage backend is not configured."""

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def presign_download(self, *, bucket: str, key: str, expires_in: int) -> Dict[str, Any]:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def delete_object(self, *, bucket: str, key: str) -> None:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")


__all__ = ["ObjectStorage", "NullStorageAdapter"]
