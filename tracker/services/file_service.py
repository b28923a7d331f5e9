"""Blob storage for job frames: save, fetch and clean up frame payloads."""

import base64
import binascii
import re
import uuid
from typing import Protocol

from tracker.core.models import BlobRef

_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,")


class BlobBackend(Protocol):
    """Byte-blob store operations FileService relies on."""

    def upload_fileobj(self, key: str, data: bytes, content_type: str = ...) -> None: ...

    def download_fileobj(self, key: str) -> bytes: ...

    def delete_fileobj(self, key: str) -> None: ...


class FileService:
    """Service for frame blob operations on top of a blob backend (S3 in production)."""

    def __init__(self, backend: BlobBackend) -> None:
        """Initialize FileService with a blob backend such as S3FileService."""
        self.s3 = backend

    def save_file(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """Save a blob under the given key."""
        self.s3.upload_fileobj(key, data, content_type)

    def get_file(self, key: str) -> bytes:
        """Retrieve a blob by key."""
        return self.s3.download_fileobj(key)

    def delete_file(self, key: str) -> None:
        """Delete a blob by key."""
        self.s3.delete_fileobj(key)

    def save_frames(self, owner: str, frames: list[bytes]) -> list[BlobRef]:
        """Store frames under a fresh per-owner prefix and return references to them, in order."""
        prefix = f"frames/{owner}/{uuid.uuid4()}"
        refs = []
        for index, frame in enumerate(frames):
            key = f"{prefix}/frame-{index:04d}.jpg"
            self.save_file(key, frame, "image/jpeg")
            refs.append(BlobRef(key=key, size=len(frame)))
        return refs


def decode_inline_frame(frame: str) -> bytes:
    """Decode an inline frame given as a base64 data URL or bare base64 string."""
    try:
        return base64.b64decode(_DATA_URL_PREFIX.sub("", frame.strip()), validate=True)
    except binascii.Error as exc:
        msg = f"Inline frame is not valid base64: {exc}"
        raise ValueError(msg) from exc
