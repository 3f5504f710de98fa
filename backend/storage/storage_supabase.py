"""
Supabase-backed object storage adapter for certificate artifacts.

This adapter implements ObjectStorage using a provided Supabase client. It is
intentionally duck-typed to avoid a hard dependency during testing. The client
is expected to expose `.storage.from_(bucket)` (supabase client) or
`.from_(bucket)` (storage3 client) which returns an object offering:

- upload(path, body, file_options) -> Any
- create_signed_url(path, expires_in) -> { signedURL | signedUrl | signed_url | url }
- remove([path]) -> Any

Security:
- The caller must ensure the client is initialized with the Service Role key.
- The bucket is private; students receive only signed URLs.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
import os
from urllib.parse import urlparse as _urlparse, urlunparse as _urlunparse

from .ports import ObjectStorage


class SupabaseStorageAdapter(ObjectStorage):
    """Storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client."""
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)  # type: ignore[attr-defined]
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    @staticmethod
    def _relative_key(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id itself; keys must be bucket-relative.
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    # --- Protocol methods --------------------------------------------------------

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Upload a binary object without overwriting an existing one.

        Behavior:
            - Normalizes the key to be bucket-relative.
            - Passes content-type in both kebab and camel case to be compatible
              across client versions; `upsert` stays off so a retried approval
              never clobbers a stored certificate.

        Raises:
            Propagates client exceptions. No return value on success.
        """
        b = self._bucket(bucket)
        opts = {"content-type": content_type, "contentType": content_type, "upsert": "false"}
        b.upload(self._relative_key(bucket, key), body, opts)

    def presign_download(self, *, bucket: str, key: str, expires_in: int) -> Dict[str, Any]:
        b = self._bucket(bucket)
        res = b.create_signed_url(self._relative_key(bucket, key), expires_in)
        url = None
        if isinstance(res, dict):
            url = self._first_key(res, "signedURL", "signedUrl", "signed_url", "url")
            data = res.get("data") if "data" in res else None
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "signedURL", "signedUrl", "signed_url", "url")
        if not url:
            raise RuntimeError("failed_to_presign_download")
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        return {"url": self._public_url(str(url)), "expires_at": expires_at.isoformat()}

    def delete_object(self, *, bucket: str, key: str) -> None:
        b = self._bucket(bucket)
        b.remove([self._relative_key(bucket, key)])

    # --- Local helpers ---------------------------------------------------------

    def _public_url(self, url: str) -> str:
        """Rewrite the signed URL host to SUPABASE_PUBLIC_URL when configured.

        Signed URLs are handed to browsers. When the backend talks to Storage
        over an internal host (e.g. a container name), the browser-facing host
        must be substituted. The token is path-bound, so the signature stays
        valid. Without SUPABASE_PUBLIC_URL the URL is returned unchanged.
        """
        public = (os.getenv("SUPABASE_PUBLIC_URL") or "").strip()
        if not public:
            return url
        src = _urlparse(url)
        dst = _urlparse(public)
        if not src.scheme or not src.netloc or not dst.scheme or not dst.netloc:
            return url
        path = src.path or "/"
        if path.startswith("/object/"):
            path = "/storage/v1" + path
        return _urlunparse((dst.scheme, dst.netloc, path, src.params, src.query, src.fragment))


__all__ = ["SupabaseStorageAdapter"]
