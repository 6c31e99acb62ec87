"""Image storage for reference photos, sampled frames and face crops.

Two backends: a local directory under the data root (served by the
`/files` router) and S3 (presigned GET URLs). Records keep storage keys and
URLs are resolved at read time, so presigned links never go stale in the
tables.
"""

from __future__ import annotations

import base64
import logging
import ssl
import time
from mimetypes import guess_type
from pathlib import Path
from typing import Callable, Optional, TypeVar

from apps.api import config
from py_missingwatch.layout import get_path

LOGGER = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/files"
S3_MAX_RETRIES = 3
S3_RETRY_BASE_DELAY = 1.0  # seconds
S3_RETRY_MAX_DELAY = 10.0  # seconds

T = TypeVar("T")


class StorageError(RuntimeError):
    pass


def _is_retryable_error(exc: Exception) -> bool:
    """Check if an exception is a retryable network/SSL error."""
    if isinstance(exc, ssl.SSLError) or isinstance(exc.__cause__, ssl.SSLError):
        return True
    exc_str = str(exc).lower()
    return any(kw in exc_str for kw in ("ssl", "connection reset", "connection aborted", "timeout"))


def _retry(operation: Callable[[], T], description: str) -> T:
    """Run an S3 call with exponential backoff on transient network errors."""
    for attempt in range(S3_MAX_RETRIES + 1):
        try:
            return operation()
        except Exception as exc:
            if not _is_retryable_error(exc) or attempt >= S3_MAX_RETRIES:
                raise
            delay = min(S3_RETRY_BASE_DELAY * (2 ** attempt), S3_RETRY_MAX_DELAY)
            LOGGER.warning(
                "Retryable error on %s (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt + 1,
                S3_MAX_RETRIES + 1,
                delay,
                exc,
            )
            time.sleep(delay)
    raise StorageError(f"Retry loop exited unexpectedly for {description}")


def infer_mime(key: str) -> str:
    mime, _ = guess_type(key)
    return mime or "application/octet-stream"


def _safe_key(key: str) -> str:
    parts = [p for p in key.replace("\\", "/").split("/") if p]
    if not parts or any(p in {".", ".."} for p in parts):
        raise StorageError(f"Invalid storage key: {key!r}")
    return "/".join(parts)


class StorageService:
    """Put/get/delete image objects by key."""

    def __init__(self, backend: Optional[str] = None, bucket: Optional[str] = None):
        self.backend = (backend or config.STORAGE_BACKEND).lower()
        self.bucket = bucket or config.S3_BUCKET
        self._s3 = None
        if self.backend not in {"local", "s3"}:
            raise StorageError(f"Unsupported STORAGE_BACKEND '{self.backend}'")
        if self.backend == "s3" and not self.bucket:
            raise StorageError("S3_BUCKET must be set when STORAGE_BACKEND=s3")

    # ------------------------------------------------------------------ local
    @staticmethod
    def local_path(key: str) -> Path:
        return get_path("images") / _safe_key(key)

    # --------------------------------------------------------------------- s3
    @property
    def s3(self):
        if self._s3 is None:
            import boto3

            self._s3 = boto3.client("s3", region_name=config.AWS_REGION)
        return self._s3

    # ----------------------------------------------------------------- public
    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        key = _safe_key(key)
        content_type = content_type or infer_mime(key)
        if self.backend == "local":
            path = self.local_path(key)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        else:
            _retry(
                lambda: self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type),
                f"put {key}",
            )
        LOGGER.debug("Stored %s (%d bytes, %s)", key, len(data), self.backend)
        return key

    def read(self, key: str) -> bytes:
        key = _safe_key(key)
        if self.backend == "local":
            try:
                return self.local_path(key).read_bytes()
            except FileNotFoundError as exc:
                raise StorageError(f"Object not found: {key}") from exc
        response = _retry(lambda: self.s3.get_object(Bucket=self.bucket, Key=key), f"get {key}")
        return response["Body"].read()

    def delete(self, key: str) -> None:
        key = _safe_key(key)
        if self.backend == "local":
            self.local_path(key).unlink(missing_ok=True)
        else:
            _retry(lambda: self.s3.delete_object(Bucket=self.bucket, Key=key), f"delete {key}")

    def url(self, key: Optional[str]) -> Optional[str]:
        """Client-facing URL for a key (local route or presigned S3 link)."""
        if not key:
            return None
        key = _safe_key(key)
        if self.backend == "local":
            return f"{LOCAL_URL_PREFIX}/{key}"
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=config.PRESIGN_EXPIRY_S,
        )

    def reference_url(self, key: str) -> str:
        """URL the remote comparison model can fetch.

        Local objects are not reachable from outside, so they are inlined as
        a data URL.
        """
        if self.backend == "s3":
            return self.url(key)
        payload = base64.b64encode(self.read(key)).decode("ascii")
        return f"data:{infer_mime(key)};base64,{payload}"
