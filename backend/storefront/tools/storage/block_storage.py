from __future__ import annotations

import io
import logging
from functools import lru_cache
from typing import BinaryIO

from django.conf import settings

from ..database.supabase import SupabaseConfigurationError, _ensure_https, get_supabase_client

logger = logging.getLogger(__name__)


class BlockStorageError(RuntimeError):
    """Raised when a block-storage read or write fails."""


class BlockStorageConfigurationError(BlockStorageError):
    """Raised when block-storage settings are missing or invalid."""


def _setting(name: str, default: str = "") -> str:
    return str(getattr(settings, name, default) or "").strip()


def _backend() -> str:
    backend = _setting("ASSET_STORAGE_BACKEND", default="supabase").lower()
    if backend == "supabase":
        return "supabase"
    if backend in {"s3", "s3-compatible", "s3_compatible"}:
        return "s3"
    raise BlockStorageConfigurationError(
        "ASSET_STORAGE_BACKEND must be either 'supabase' or 's3'."
    )


def normalize_storage_key(file_path: str) -> str:
    key = str(file_path or "").strip().lstrip("/")
    if not key:
        raise BlockStorageError("Storage file path is empty.")
    return key


def _require_bucket() -> str:
    bucket = _setting("ASSET_STORAGE_BUCKET")
    if not bucket:
        raise BlockStorageConfigurationError("ASSET_STORAGE_BUCKET is required.")
    return bucket


def _supabase_bucket(bucket: str):
    try:
        client = get_supabase_client(use_service_role=True)
    except SupabaseConfigurationError as exc:
        raise BlockStorageConfigurationError(
            "Supabase storage requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
        ) from exc
    return client.storage.from_(bucket)


@lru_cache(maxsize=1)
def _cached_s3_client(
    endpoint_url: str,
    region: str,
    access_key_id: str,
    secret_access_key: str,
):
    try:
        import boto3
    except ImportError as exc:
        raise BlockStorageConfigurationError(
            "boto3 is required for ASSET_STORAGE_BACKEND=s3."
        ) from exc

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url or None,
        region_name=region or "us-east-1",
        aws_access_key_id=access_key_id or None,
        aws_secret_access_key=secret_access_key or None,
    )


def _s3_client():
    access_key_id = _setting("ASSET_STORAGE_S3_ACCESS_KEY_ID")
    secret_access_key = _setting("ASSET_STORAGE_S3_SECRET_ACCESS_KEY")
    if not access_key_id or not secret_access_key:
        raise BlockStorageConfigurationError(
            "S3 storage requires ASSET_STORAGE_S3_ACCESS_KEY_ID and ASSET_STORAGE_S3_SECRET_ACCESS_KEY."
        )

    endpoint_url = _ensure_https(_setting("ASSET_STORAGE_S3_ENDPOINT_URL"))
    region = _setting("ASSET_STORAGE_S3_REGION", default="us-east-1")
    return _cached_s3_client(endpoint_url, region, access_key_id, secret_access_key)


def open_stored_file(file_path: str) -> BinaryIO:
    """Return a readable binary stream for ``file_path``."""
    backend = _backend()
    bucket = _require_bucket()
    key = normalize_storage_key(file_path)

    try:
        if backend == "supabase":
            return io.BytesIO(_supabase_bucket(bucket).download(key))
        return _s3_client().get_object(Bucket=bucket, Key=key)["Body"]
    except BlockStorageError:
        raise
    except Exception as exc:
        logger.warning("Storage read failed for %s: %s", key, exc)
        raise BlockStorageError(f"Stored file {key} could not be read.") from exc


def save_stored_file(file_path: str, content: bytes, *, content_type: str = "application/octet-stream") -> str:
    backend = _backend()
    bucket = _require_bucket()
    key = normalize_storage_key(file_path)

    try:
        if backend == "supabase":
            _supabase_bucket(bucket).upload(
                key,
                content,
                {"content-type": content_type, "upsert": "true"},
            )
        else:
            _s3_client().put_object(Bucket=bucket, Key=key, Body=content, ContentType=content_type)
    except BlockStorageError:
        raise
    except Exception as exc:
        logger.warning("Storage write failed for %s: %s", key, exc)
        raise BlockStorageError(f"File {key} could not be stored.") from exc

    return key
