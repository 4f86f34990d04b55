"""
Object storage gateway (Cloudflare R2 through the S3 API).

Clients never stream audio through this backend: we hand out presigned URLs and
they talk to the bucket directly. The gateway only writes blobs during
ingestion and performs head/delete housekeeping.
"""

from __future__ import annotations

import logging
import os
import random
import re
import string
import time
from functools import lru_cache
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from beatstream.api.errors import UpstreamError

logger = logging.getLogger(__name__)

DOWNLOAD_URL_EXPIRES_SECONDS = 300
UPLOAD_URL_EXPIRES_SECONDS = 600

_MAX_BASE_NAME = 50
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9.-]")
_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


# PUBLIC_INTERFACE
def sanitize_key_name(name: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with '_' and cap the result at 50 characters."""
    return _UNSAFE_KEY_CHARS.sub("_", name)[:_MAX_BASE_NAME]


# PUBLIC_INTERFACE
def unique_token(now_ms: Optional[int] = None) -> str:
    """Time-based plus random token, e.g. 'lzq3k1x2-a9f0c'."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=5))
    return f"{_to_base36(now_ms)}-{suffix}"


# PUBLIC_INTERFACE
def build_object_key(folder: str, name: str, extension: str = "") -> str:
    """
    Build a storage key: <folder>/<unique token>-<sanitized name><sanitized extension>.

    Only the name is truncated; the extension is sanitized but kept whole.

    Example:
        build_object_key("audio", "Gajah (Live)", ".mp3") -> "audio/lzq3k1x2-a9f0c-Gajah__Live_.mp3"
    """
    return f"{folder}/{unique_token()}-{sanitize_key_name(name)}{_UNSAFE_KEY_CHARS.sub('_', extension)}"


class ObjectStorage:
    """Thin wrapper around an S3 client bound to one bucket."""

    def __init__(self, client: Any, bucket: str, public_base_url: Optional[str] = None) -> None:
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def presign_download(self, key: str, expires_in: int = DOWNLOAD_URL_EXPIRES_SECONDS) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("storage_presign_download_failed: key=%s exc=%s", key, exc)
            raise UpstreamError("Failed to create streaming URL.")

    def presign_upload(self, key: str, content_type: str, expires_in: int = UPLOAD_URL_EXPIRES_SECONDS) -> str:
        try:
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("storage_presign_upload_failed: key=%s exc=%s", key, exc)
            raise UpstreamError("Failed to create upload URL.")

    def public_url(self, key: str) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/{key}"

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            logger.error("storage_put_failed: key=%s exc=%s", key, exc)
            raise UpstreamError("Failed to store the audio file.", details=str(exc))
        logger.info("storage_put: key=%s bytes=%s", key, len(body))

    def exists(self, key: str) -> Optional[bool]:
        """
        Head-object check.

        Returns:
            True/False when the bucket answered, None when the check itself failed.
        """
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            logger.warning("storage_head_failed: key=%s code=%s", key, code)
            return None
        except BotoCoreError as exc:
            logger.warning("storage_head_failed: key=%s exc=%s", key, exc)
            return None

    def delete_object(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.info("storage_deleted: key=%s", key)


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"{name} env var is required.")
    return value


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_storage() -> ObjectStorage:
    """FastAPI dependency returning the process-wide R2 gateway built from R2_* env vars."""
    client = boto3.client(
        "s3",
        endpoint_url=_required_env("R2_ENDPOINT"),
        aws_access_key_id=_required_env("R2_ACCESS_KEY_ID"),
        aws_secret_access_key=_required_env("R2_SECRET_ACCESS_KEY"),
        region_name="auto",
        config=Config(signature_version="s3v4"),
    )
    return ObjectStorage(
        client,
        bucket=_required_env("R2_BUCKET_NAME"),
        public_base_url=os.getenv("R2_PUBLIC_BASE_URL"),
    )


# PUBLIC_INTERFACE
def get_optional_storage() -> Optional[ObjectStorage]:
    """
    FastAPI dependency for handlers whose storage work is best-effort.

    Returns None when R2 is not configured, so database work in the handler still runs.
    """
    try:
        return get_storage()
    except RuntimeError as exc:
        logger.warning("storage_not_configured: %s", exc)
        return None
