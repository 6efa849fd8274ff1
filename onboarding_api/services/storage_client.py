"""boto3 client for the onboarding document bucket."""

from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.client import BaseClient
from botocore.config import Config

from onboarding_api.core.config import settings

ADDRESSING_STYLES = {"path", "virtual"}


def _client_config() -> Config:
    options: dict = {"retries": {"max_attempts": 3, "mode": "standard"}}
    style = settings.S3_URL_STYLE.strip().lower()
    if style in ADDRESSING_STYLES:
        options["s3"] = {"addressing_style": style}
    return Config(**options)


@lru_cache(maxsize=4)
def _cached_client(region: str, endpoint_url: str, access_key: str) -> BaseClient:
    return boto3.client(
        "s3",
        region_name=region or None,
        endpoint_url=endpoint_url.rstrip("/") or None,
        aws_access_key_id=access_key or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        config=_client_config(),
    )


def get_s3_client() -> BaseClient:
    """Client for S3_BUCKET; reused while region, endpoint and credentials stay the same."""
    return _cached_client(settings.S3_REGION, settings.S3_ENDPOINT_URL, settings.AWS_ACCESS_KEY_ID)
