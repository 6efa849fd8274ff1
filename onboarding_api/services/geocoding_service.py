"""Reverse geocoding of submission coordinates (Nominatim-compatible API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from onboarding_api.core.config import settings
from onboarding_api.services.http_service import QUICK_RETRY, send_with_retries

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    """Reverse geocoding failed or returned no usable place."""

    pass


@dataclass
class ResolvedPlace:
    country: str
    region: str
    city: str


def _first(address: dict, *keys: str) -> str:
    for key in keys:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


async def reverse_geocode(latitude: float, longitude: float) -> ResolvedPlace:
    """
    Resolve coordinates to country/region/city.

    Raises:
        GeocodingError: On transport errors, non-200 responses or missing fields
    """
    params = {
        "lat": f"{latitude:.6f}",
        "lon": f"{longitude:.6f}",
        "format": "jsonv2",
        "addressdetails": "1",
        "zoom": "10",
    }
    headers = {"User-Agent": settings.GEOCODER_USER_AGENT, "Accept-Language": "en"}

    try:
        async with httpx.AsyncClient(timeout=settings.GEOCODER_TIMEOUT_SECONDS) as client:
            response = await send_with_retries(
                client, "GET", settings.GEOCODER_URL, policy=QUICK_RETRY, params=params, headers=headers
            )
    except httpx.HTTPError as exc:
        raise GeocodingError("Reverse geocoding request failed") from exc

    if response.status_code != 200:
        raise GeocodingError(f"Reverse geocoding returned {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        raise GeocodingError("Reverse geocoding returned invalid JSON") from exc

    address = data.get("address") if isinstance(data, dict) else None
    if not isinstance(address, dict):
        raise GeocodingError("Reverse geocoding returned no address")

    country = _first(address, "country")
    region = _first(address, "state", "province", "region", "state_district", "county")
    city = _first(address, "city", "town", "village", "municipality", "suburb", "county")
    if not (country and region and city):
        raise GeocodingError("Reverse geocoding could not resolve city/region/country")

    return ResolvedPlace(country=country, region=region, city=city)
