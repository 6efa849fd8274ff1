"""Temporary uploads staged against one onboarding before the form is saved.

Files land under temp/onboardings/{id}/uploads/ and are referenced from
the form payload by their FileAsset. Submission copies them into the
record's final folders; the temp object itself is left for the bucket's
lifecycle rule.
"""

import logging
from typing import Any
from uuid import UUID

from onboarding_api.core.config import settings
from onboarding_api.core.errors import BadRequestError
from onboarding_api.core.structured_logging import log_context
from onboarding_api.db.enums import StorageNamespace
from onboarding_api.services import storage_service
from onboarding_api.services.asset_finalizer import AssetScope

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
UPLOAD_FOLDER = "uploads"


def temp_upload_prefix(onboarding_id: UUID | str) -> str:
    root = storage_service.make_record_temp_root(StorageNamespace.ONBOARDINGS, onboarding_id)
    return f"{root}{UPLOAD_FOLDER}"


def is_allowed_mime_type(content_type: str | None) -> bool:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    return mime == PDF_MIME_TYPE or mime.startswith("image/")


def validate_file(content_type: str | None, size: int) -> None:
    """
    Raises:
        BadRequestError: Unsupported type (400), empty (400) or too large (413)
    """
    if not is_allowed_mime_type(content_type):
        raise BadRequestError(
            "Only PDF and image files can be uploaded",
            code="UNSUPPORTED_FILE_TYPE",
            meta={"contentType": content_type},
        )
    if size == 0:
        raise BadRequestError("Uploaded file is empty", code="EMPTY_FILE")
    if size > settings.MAX_UPLOAD_BYTES:
        max_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        raise BadRequestError(
            f"File size exceeds {max_mb:.0f} MB limit",
            code="FILE_TOO_LARGE",
            status_code=413,
        )


def store_temp_upload(
    onboarding_id: UUID,
    filename: str | None,
    content_type: str | None,
    content: bytes,
) -> dict[str, Any]:
    """
    Validate and store an upload for one onboarding.

    Returns:
        FileAsset dict: s3Key, url, mimeType, sizeBytes, originalName
    """
    validate_file(content_type, len(content))
    mime_type = (content_type or "").split(";", 1)[0].strip().lower()

    key = storage_service.build_object_key(temp_upload_prefix(onboarding_id), filename)
    url = storage_service.put_object(key, content, mime_type)
    logger.info(
        "Stored temp upload (%d bytes, %s)",
        len(content),
        mime_type,
        extra=log_context(onboarding_id),
    )
    return {
        "s3Key": key,
        "url": url,
        "mimeType": mime_type,
        "sizeBytes": len(content),
        "originalName": filename or None,
    }


def delete_temp_upload(onboarding_id: UUID, key: str) -> None:
    """
    Remove a temp upload the record owns.

    Raises:
        BadRequestError: The key is not a temp upload of this onboarding
    """
    scope = AssetScope.for_record(StorageNamespace.ONBOARDINGS, onboarding_id)
    if not scope.owns_temp(key):
        raise BadRequestError(
            "File does not belong to this onboarding", code="FILE_NOT_OWNED"
        )
    failed = storage_service.delete_objects([key])
    if failed:
        logger.warning("Temp upload delete failed", extra=log_context(onboarding_id))
