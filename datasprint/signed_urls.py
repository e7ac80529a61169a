"""
Signed-URL gateway: turns storage failures into explicit result values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from datasprint.storage import StorageClient, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedUrl:
    url: str


@dataclass(frozen=True)
class Unavailable:
    path: str
    reason: str


SignResult = Union[SignedUrl, Unavailable]


class SignedUrlGateway:
    """Issues time-limited read URLs for objects in one bucket."""

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def sign(self, path: str, expires_in: int) -> SignResult:
        try:
            url = self.storage.presign_get(path, expires_in=expires_in)
        except StorageError as exc:
            logger.warning("Signing %s failed: %s", path, exc)
            return Unavailable(path=path, reason=str(exc))
        if not url:
            return Unavailable(path=path, reason="empty signed url")
        return SignedUrl(url=url)
