"""Object storage operations for onboarding documents.

Keys follow a namespace convention:
    temp/{namespace}/{entity_id}/uploads/           staged by a record's session, not yet final
    submissions/{namespace}/{entity_id}/{folder}/   finalized, owned by a record

Two backends: "s3" (boto3, S3-compatible) and "local" (filesystem, dev/test).
"""

import logging
import os
import uuid
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from onboarding_api.core.config import settings
from onboarding_api.core.errors import StorageFailureError
from onboarding_api.db.enums import StorageFolder, StorageNamespace
from onboarding_api.services.storage_client import get_s3_client
from onboarding_api.utils.normalization import safe_filename

logger = logging.getLogger(__name__)

TEMP_PREFIX = "temp/"
FINAL_ROOT = "submissions/"
LOCAL_URL_PREFIX = "/files/"

# S3 DeleteObjects accepts at most 1000 keys per call
_DELETE_BATCH_SIZE = 1000


# =============================================================================
# Configuration
# =============================================================================

def _get_storage_backend() -> str:
    """Get configured storage backend."""
    return getattr(settings, "STORAGE_BACKEND", "local")


def _get_local_storage_path() -> str:
    """Get local storage directory path."""
    path = getattr(settings, "LOCAL_STORAGE_PATH", "/tmp/onboarding-files")
    os.makedirs(path, exist_ok=True)
    return path


def _local_path(key: str) -> str:
    root = os.path.realpath(_get_local_storage_path())
    path = os.path.realpath(os.path.join(root, key))
    if os.path.commonpath([root, path]) != root:
        raise StorageFailureError(f"Invalid storage key: {key}")
    return path


# =============================================================================
# Key conventions
# =============================================================================

def is_temp_key(key: str | None) -> bool:
    return bool(key) and key.startswith(TEMP_PREFIX)


def is_final_key(key: str | None) -> bool:
    return bool(key) and key.startswith(FINAL_ROOT)


def is_clean_key(key: str) -> bool:
    """No empty, "." or ".." segments, so prefix checks cannot be escaped."""
    if "\\" in key:
        return False
    return all(part not in ("", ".", "..") for part in key.split("/"))


def make_final_prefix(
    namespace: StorageNamespace, entity_id: object, folder: StorageFolder
) -> str:
    """Deterministic permanent prefix for one record's logical folder."""
    return f"{FINAL_ROOT}{namespace.value}/{entity_id}/{folder.value}"


def make_record_final_root(namespace: StorageNamespace, entity_id: object) -> str:
    """Parent of every final folder owned by one record (trailing slash)."""
    return f"{FINAL_ROOT}{namespace.value}/{entity_id}/"


def make_record_temp_root(namespace: StorageNamespace, entity_id: object) -> str:
    """Parent of every temp upload staged against one record (trailing slash)."""
    return f"{TEMP_PREFIX}{namespace.value}/{entity_id}/"


def make_temp_prefix(*parts: str) -> str:
    cleaned = "/".join(p.strip("/") for p in parts if p)
    return f"{TEMP_PREFIX}{cleaned}" if cleaned else TEMP_PREFIX.rstrip("/")


def build_object_key(prefix: str, filename: str | None) -> str:
    """Unique key under prefix, keeping a readable filename suffix."""
    return f"{prefix.rstrip('/')}/{uuid.uuid4().hex}-{safe_filename(filename)}"


def build_object_url(key: str) -> str:
    """Stable (non-expiring) URL recorded alongside a key."""
    if _get_storage_backend() == "s3":
        base = settings.S3_PUBLIC_BASE_URL.rstrip("/")
        if base:
            return f"{base}/{quote(key)}"
        if settings.S3_ENDPOINT_URL:
            return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{settings.S3_BUCKET}/{quote(key)}"
        return f"https://{settings.S3_BUCKET}.s3.{settings.S3_REGION}.amazonaws.com/{quote(key)}"
    return f"{LOCAL_URL_PREFIX}{quote(key)}"


# =============================================================================
# Object operations
# =============================================================================

def copy_object(src_key: str, dest_prefix: str, filename: str | None = None) -> tuple[str, str]:
    """
    Copy an object under dest_prefix.

    The source object is left in place.

    Returns:
        (new_key, url)

    Raises:
        StorageFailureError: If the copy fails
    """
    new_key = build_object_key(dest_prefix, filename or src_key.rsplit("/", 1)[-1])
    backend = _get_storage_backend()

    if backend == "s3":
        s3 = get_s3_client()
        try:
            s3.copy_object(
                Bucket=settings.S3_BUCKET,
                Key=new_key,
                CopySource={"Bucket": settings.S3_BUCKET, "Key": src_key},
                MetadataDirective="COPY",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageFailureError(f"Failed to copy object {src_key}") from exc
    else:
        src_path = _local_path(src_key)
        dest_path = _local_path(new_key)
        try:
            os.makedirs(os.path.dirname(dest_path), exist_ok=True)
            with open(src_path, "rb") as src, open(dest_path, "wb") as dest:
                for chunk in iter(lambda: src.read(65536), b""):
                    dest.write(chunk)
        except OSError as exc:
            raise StorageFailureError(f"Failed to copy object {src_key}") from exc

    return new_key, build_object_url(new_key)


def delete_objects(keys: list[str]) -> list[str]:
    """
    Delete objects best-effort.

    Failures are logged, never raised.

    Returns:
        Keys that could not be deleted
    """
    unique_keys = list(dict.fromkeys(k for k in keys if k))
    if not unique_keys:
        return []

    failed: list[str] = []
    backend = _get_storage_backend()

    if backend == "s3":
        s3 = get_s3_client()
        for start in range(0, len(unique_keys), _DELETE_BATCH_SIZE):
            batch = unique_keys[start : start + _DELETE_BATCH_SIZE]
            try:
                response = s3.delete_objects(
                    Bucket=settings.S3_BUCKET,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError):
                logger.warning("Batch delete failed for %d objects", len(batch), exc_info=True)
                failed.extend(batch)
                continue
            for error in response.get("Errors", []) or []:
                failed.append(error.get("Key", ""))
    else:
        for key in unique_keys:
            try:
                path = _local_path(key)
                if os.path.exists(path):
                    os.remove(path)
            except (OSError, StorageFailureError):
                logger.warning("Failed to delete local object %s", key, exc_info=True)
                failed.append(key)

    if failed:
        logger.warning("Storage cleanup left %d objects behind", len(failed))
    return failed


def put_object(key: str, data: bytes, content_type: str) -> str:
    """Store bytes at key and return its URL."""
    backend = _get_storage_backend()
    if backend == "s3":
        s3 = get_s3_client()
        try:
            s3.put_object(Bucket=settings.S3_BUCKET, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            raise StorageFailureError(f"Failed to store object {key}") from exc
    else:
        path = _local_path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as exc:
            raise StorageFailureError(f"Failed to store object {key}") from exc
    return build_object_url(key)


def get_object_bytes(key: str) -> bytes:
    """Read an object's content."""
    backend = _get_storage_backend()
    if backend == "s3":
        s3 = get_s3_client()
        try:
            response = s3.get_object(Bucket=settings.S3_BUCKET, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            raise StorageFailureError(f"Failed to read object {key}") from exc
    try:
        with open(_local_path(key), "rb") as f:
            return f.read()
    except OSError as exc:
        raise StorageFailureError(f"Failed to read object {key}") from exc


def generate_signed_url(key: str, filename: str | None = None) -> str:
    """Generate a short-lived download URL."""
    if _get_storage_backend() == "s3":
        s3 = get_s3_client()
        params = {"Bucket": settings.S3_BUCKET, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{safe_filename(filename)}"'
        try:
            return s3.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=settings.SIGNED_URL_EXPIRY_SECONDS,
            )
        except (ClientError, BotoCoreError):
            logger.warning("Failed to presign %s", key, exc_info=True)
            return ""
    return build_object_url(key)


def get_local_file_path(key: str) -> str | None:
    """Filesystem path for a key on the local backend, or None if absent."""
    if _get_storage_backend() != "local":
        return None
    try:
        path = _local_path(key)
    except StorageFailureError:
        return None
    return path if os.path.isfile(path) else None
