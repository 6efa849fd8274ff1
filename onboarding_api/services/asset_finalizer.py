"""Promote uploaded files from temporary to permanent storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from onboarding_api.core.errors import FormValidationError, StorageFailureError
from onboarding_api.db.enums import StorageNamespace
from onboarding_api.services import storage_service

logger = logging.getLogger(__name__)

FileAsset = dict[str, Any]
AssetCache = dict[str, FileAsset]


@dataclass(frozen=True)
class AssetScope:
    """
    The keys one record may reference.

    A form may point at temp uploads staged against the record, or at files
    already finalized into the record's own folders. Nothing else.
    """

    temp_root: str
    final_root: str

    @classmethod
    def for_record(cls, namespace: StorageNamespace, entity_id: object) -> "AssetScope":
        return cls(
            temp_root=storage_service.make_record_temp_root(namespace, entity_id),
            final_root=storage_service.make_record_final_root(namespace, entity_id),
        )

    def owns_temp(self, key: str) -> bool:
        return (
            storage_service.is_temp_key(key)
            and storage_service.is_clean_key(key)
            and key.startswith(self.temp_root)
        )

    def owns_final(self, key: str) -> bool:
        return (
            storage_service.is_final_key(key)
            and storage_service.is_clean_key(key)
            and key.startswith(self.final_root)
        )


def key_error(asset: FileAsset | None, scope: AssetScope, field: str) -> dict[str, str] | None:
    """Field error for an asset whose key the record may not use, else None."""
    if not asset:
        return None
    key = asset.get("s3Key")
    if not isinstance(key, str) or not key:
        return {"field": f"{field}.s3Key", "message": f"{field}.s3Key is required"}
    if scope.owns_temp(key) or scope.owns_final(key):
        return None
    return {
        "field": f"{field}.s3Key",
        "message": f"{field}.s3Key does not reference a file uploaded for this onboarding",
    }


def finalize_asset(
    asset: FileAsset | None,
    destination_prefix: str,
    cache: AssetCache,
    on_moved: Callable[[str], None],
    scope: AssetScope,
    field: str = "file",
) -> FileAsset | None:
    """
    Copy a temporary asset under destination_prefix and return the new reference.

    - Assets already final under this record are returned unchanged; on_moved
      is not called.
    - A source key already in cache resolves to the cached result without
      touching storage, so two fields pointing at one upload copy it once.
    - mimeType, sizeBytes and originalName carry over; s3Key and url are
      regenerated. The temporary source object is never deleted here.

    Raises:
        StorageFailureError: If the asset has no key or the copy fails
        FormValidationError: If the key is outside the record's scope
    """
    if not asset:
        return asset

    source_key = asset.get("s3Key")
    if not isinstance(source_key, str) or not source_key:
        raise StorageFailureError("File asset is missing s3Key")

    if scope.owns_final(source_key):
        return asset

    if not scope.owns_temp(source_key):
        error = key_error(asset, scope, field)
        raise FormValidationError(error["message"], errors=[error])

    cached = cache.get(source_key)
    if cached is not None:
        return cached

    new_key, url = storage_service.copy_object(
        source_key, destination_prefix, asset.get("originalName")
    )
    finalized: FileAsset = {**asset, "s3Key": new_key, "url": url}
    cache[source_key] = finalized
    on_moved(new_key)
    logger.debug("Finalized asset into %s", destination_prefix)
    return finalized
