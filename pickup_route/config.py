import os
from dataclasses import dataclass, fields
from typing import Tuple

from dotenv import load_dotenv

LatLon = Tuple[float, float]

OSRM_URL = "https://router.project-osrm.org"
NOMINATIM_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "pickup_route/1.0"
DEFAULT_CENTER: LatLon = (10.8231, 106.6297)  # Ho Chi Minh City


@dataclass
class Settings:
    osrm_url: str = OSRM_URL
    osrm_profile: str = "driving"
    nominatim_url: str = NOMINATIM_URL
    user_agent: str = USER_AGENT
    geocode_language: str = "vi,en"
    geocode_timeout_s: float = 10.0

    debounce_s: float = 0.8
    route_timeout_s: float = 10.0
    rate_limit: int = 5
    rate_window_s: float = 60.0
    minutes_per_km: float = 3.0
    key_precision: int = 6
    cache_size: int = 256

    default_center: LatLon = DEFAULT_CENTER
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path=None) -> "Settings":
        load_dotenv(dotenv_path)
        values = {}
        for f in fields(cls):
            if f.name == "default_center":
                continue
            name = "PICKUP_" + f.name.upper()
            raw = os.getenv(name)
            if raw is None or raw == "":
                continue
            values[f.name] = _parse(name, raw, type(f.default))
        return cls(**values)


def _parse(name: str, raw: str, kind: type):
    if kind is str:
        return raw
    try:
        return kind(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be {kind.__name__}, got {raw!r}") from exc
