"""Best-effort reverse geocoding of clock-event GPS fixes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from hrms_kernel.exceptions import InputValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GpsFix:
    latitude: float
    longitude: float
    accuracy: float | None = None

    def __post_init__(self) -> None:
        if not -90 <= self.latitude <= 90:
            raise InputValidationError(f"latitude {self.latitude} out of range", "latitude")
        if not -180 <= self.longitude <= 180:
            raise InputValidationError(f"longitude {self.longitude} out of range", "longitude")

    def as_location(self) -> str:
        """Stored form of the coordinates."""
        return f"{self.latitude:.6f},{self.longitude:.6f}"

    def fallback_address(self) -> str:
        return f"GPS: {self.latitude:.6f}, {self.longitude:.6f}"


class ReverseGeocoder(Protocol):
    async def reverse(self, fix: GpsFix) -> str: ...


class NominatimGeocoder:
    """Reverse geocoder backed by the OpenStreetMap Nominatim API."""

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url
        self.user_agent = user_agent
        self.timeout = timeout
        self._client = client

    async def reverse(self, fix: GpsFix) -> str:
        """Display name for a fix. Raises httpx errors on transport failure."""
        params = {
            "format": "json",
            "lat": f"{fix.latitude}",
            "lon": f"{fix.longitude}",
            "zoom": "18",
            "addressdetails": "1",
        }
        headers = {"User-Agent": self.user_agent}
        if self._client is not None:
            response = await self._client.get(self.base_url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.base_url, params=params, headers=headers)
        response.raise_for_status()
        return self._format(response.json(), fix)

    @staticmethod
    def _format(data: dict[str, Any], fix: GpsFix) -> str:
        address = data.get("address") or {}
        parts = [
            address.get("road") or address.get("pedestrian"),
            address.get("suburb") or address.get("neighbourhood"),
            address.get("city") or address.get("town") or address.get("village"),
            address.get("state"),
        ]
        short = ", ".join(p for p in parts if p)
        return short or data.get("display_name") or fix.fallback_address()


async def resolve_address(geocoder: ReverseGeocoder | None, fix: GpsFix) -> str:
    """Address for a fix, falling back to the coordinates on any lookup failure."""
    if geocoder is None:
        return fix.fallback_address()
    try:
        return await geocoder.reverse(fix)
    except Exception as exc:
        logger.warning(
            "Reverse geocoding failed, storing coordinates",
            extra={"error": type(exc).__name__, "detail": str(exc)},
        )
        return fix.fallback_address()
