import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .errors import AddressNotFound, GeocodingUnavailable
from .osrm import get_json

LatLon = Tuple[float, float]

log = logging.getLogger("pickup_route.geocoding")


@dataclass(frozen=True)
class GeocodeResult:
    coordinates: LatLon
    display_name: str


def coordinate_label(coordinates: LatLon) -> str:
    lat, lon = coordinates
    return f"Point ({lat:.4f}, {lon:.4f})"


def compose_address(data: Dict[str, Any]) -> Optional[str]:
    """Short label from a Nominatim reverse answer, or None."""
    address = data.get("address") or {}
    parts = []
    if address.get("house_number"):
        parts.append(address["house_number"])
    if address.get("road"):
        parts.append(address["road"])
    area = address.get("suburb") or address.get("neighbourhood")
    if area:
        parts.append(area)
    city = address.get("city") or address.get("town")
    if city:
        parts.append(city)
    if parts:
        return ", ".join(parts)

    display = data.get("display_name") or ""
    head = ", ".join(p.strip() for p in display.split(",")[:3] if p.strip())
    return head or None


class Geocoder:
    def __init__(self, session: aiohttp.ClientSession, base_url: str,
                 user_agent: str = "pickup_route/1.0",
                 language: str = "vi,en",
                 timeout_s: float = 10.0):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.headers = {"User-Agent": user_agent, "Accept-Language": language}
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, session: aiohttp.ClientSession, settings) -> "Geocoder":
        return cls(session, settings.nominatim_url, settings.user_agent,
                   settings.geocode_language, settings.geocode_timeout_s)

    async def forward_geocode(self, text: str) -> GeocodeResult:
        query = (text or "").strip()
        if not query:
            raise AddressNotFound("Empty address")

        params = {"format": "json", "q": query, "limit": "1"}
        try:
            data = await get_json(self.session, f"{self.base_url}/search", self.timeout_s,
                                  params=params, headers=self.headers)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise GeocodingUnavailable(f"Geocoding failed for {query!r}: {exc}") from exc

        if not data:
            raise AddressNotFound(f"Address not found: {query}")
        try:
            first = data[0]
            coords = (float(first["lat"]), float(first["lon"]))
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise GeocodingUnavailable(f"Malformed geocoding answer for {query!r}") from exc
        return GeocodeResult(coordinates=coords, display_name=first.get("display_name") or query)

    async def reverse_geocode(self, coordinates: LatLon) -> str:
        lat, lon = coordinates
        params = {"format": "json", "lat": str(lat), "lon": str(lon),
                  "zoom": "18", "addressdetails": "1"}
        try:
            data = await get_json(self.session, f"{self.base_url}/reverse", self.timeout_s,
                                  params=params, headers=self.headers)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            log.info("reverse geocoding failed for %.6f,%.6f: %s", lat, lon, str(exc) or type(exc).__name__)
            return coordinate_label(coordinates)

        if not isinstance(data, dict) or not data.get("display_name"):
            return coordinate_label(coordinates)
        return compose_address(data) or coordinate_label(coordinates)
