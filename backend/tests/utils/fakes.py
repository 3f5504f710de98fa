"""
In-memory stand-ins for the SMS gateway and object storage.

Both record every call so tests can assert on side effects (messages sent,
objects written or discarded) without network access.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

_OTP_RE = re.compile(r"OTP is: (\d{6})\.")


class FakeSmsGateway:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []
        self.fail: Optional[Exception] = None

    def send_sms(self, to: str, body: str) -> None:
        if self.fail is not None:
            raise self.fail
        self.sent.append((to, body))

    def last_code(self, to: str | None = None) -> str:
        for recipient, body in reversed(self.sent):
            if to is None or recipient == to:
                m = _OTP_RE.search(body)
                if m:
                    return m.group(1)
        raise AssertionError("no OTP sent")


class FakeObjectStorage:
    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.deleted: List[Tuple[str, str]] = []
        self.fail_put: Optional[Exception] = None
        self.fail_presign: Optional[Exception] = None

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        if self.fail_put is not None:
            raise self.fail_put
        self.objects[(bucket, key)] = (bytes(body), content_type)

    def presign_download(self, *, bucket: str, key: str, expires_in: int) -> Dict[str, Any]:
        if self.fail_presign is not None:
            raise self.fail_presign
        return {
            "url": f"https://storage.test/object/sign/{bucket}/{key}?token=t{expires_in}",
            "expires_at": "2027-10-19T00:00:00+00:00",
        }

    def delete_object(self, *, bucket: str, key: str) -> None:
        self.objects.pop((bucket, key), None)
        self.deleted.append((bucket, key))


__all__ = ["FakeObjectStorage", "FakeSmsGateway"]
