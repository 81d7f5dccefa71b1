"""
OSRM route client with an LRU cache, a rolling-window rate limit and a
straight-line fallback.

compute_route() never raises for >= 2 points: any engine failure comes back
as an approximate RouteResult instead.
"""
import asyncio
import logging
import time
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

import aiohttp
import polyline

from .RouteResult import RouteResult
from .errors import RoutingError
from .geo import path_length_m, route_key

LatLon = Tuple[float, float]

log = logging.getLogger("pickup_route.osrm")


# -------------------------
# small utils
# -------------------------
def osrm_coords(points: Sequence[LatLon]) -> str:
    # OSRM wants lon,lat
    return ";".join(f"{lon},{lat}" for lat, lon in points)


async def get_json(session: aiohttp.ClientSession, url: str, timeout_s: float,
                   params: Optional[Dict[str, str]] = None,
                   headers: Optional[Dict[str, str]] = None) -> Any:
    timeout = aiohttp.ClientTimeout(total=timeout_s)
    async with session.get(url, params=params, headers=headers, timeout=timeout) as r:
        r.raise_for_status()
        return await r.json(content_type=None)


class RateLimiter:
    """At most `limit` acquisitions per rolling `window_s` seconds."""

    def __init__(self, limit: int, window_s: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_s = window_s
        self.clock = clock
        self._stamps: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._stamps and now - self._stamps[0] >= self.window_s:
            self._stamps.popleft()

    def try_acquire(self) -> bool:
        now = self.clock()
        self._prune(now)
        if len(self._stamps) >= self.limit:
            return False
        self._stamps.append(now)
        return True

    @property
    def remaining(self) -> int:
        self._prune(self.clock())
        return max(0, self.limit - len(self._stamps))


# -------------------------
# route client
# -------------------------
class RouteClient:
    def __init__(
            self,
            session: aiohttp.ClientSession,
            base_url: str,
            profile: str = "driving",
            timeout_s: float = 10.0,
            rate_limit: int = 5,
            rate_window_s: float = 60.0,
            minutes_per_km: float = 3.0,
            precision: int = 6,
            cache_size: int = 256,
            clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout_s = timeout_s
        self.minutes_per_km = minutes_per_km
        self.precision = precision
        self.cache_size = cache_size
        self.limiter = RateLimiter(rate_limit, rate_window_s, clock)
        self.request_count = 0
        self._cache: "OrderedDict[str, RouteResult]" = OrderedDict()

    @classmethod
    def from_settings(cls, session: aiohttp.ClientSession, settings) -> "RouteClient":
        return cls(
            session,
            settings.osrm_url,
            profile=settings.osrm_profile,
            timeout_s=settings.route_timeout_s,
            rate_limit=settings.rate_limit,
            rate_window_s=settings.rate_window_s,
            minutes_per_km=settings.minutes_per_km,
            precision=settings.key_precision,
            cache_size=settings.cache_size,
        )

    def key(self, points: Sequence[LatLon]) -> str:
        return route_key(points, self.precision)

    def cached(self, key: str) -> Optional[RouteResult]:
        return self._cache.get(key)

    async def compute_route(self, points: Sequence[LatLon]) -> RouteResult:
        points = [(float(lat), float(lon)) for lat, lon in points]
        if len(points) < 2:
            raise ValueError("compute_route needs at least 2 points")

        key = self.key(points)
        hit = self._cache.get(key)
        if hit is not None:
            self._cache.move_to_end(key)
            log.debug("route cache hit for %s", key)
            return hit

        if not self.limiter.try_acquire():
            log.warning("OSRM rate limit reached, using straight-line fallback")
            return self.fallback(points)

        try:
            self.request_count += 1
            result = await self.fetch_route(points)
        except (aiohttp.ClientError, asyncio.TimeoutError, RoutingError) as exc:
            log.warning("OSRM routing failed (%s), using straight-line fallback", str(exc) or type(exc).__name__)
            return self.fallback(points)

        self._store(key, result)
        return result

    async def fetch_route(self, points: Sequence[LatLon]) -> RouteResult:
        url = f"{self.base_url}/route/v1/{self.profile}/{osrm_coords(points)}"
        params = {"overview": "full", "geometries": "polyline", "steps": "false"}
        log.debug("OSRM request %s", url)
        try:
            data = await get_json(self.session, url, self.timeout_s, params=params)
        except ValueError as exc:
            raise RoutingError(f"Malformed OSRM payload: {exc}") from exc
        return parse_route(data)

    def fallback(self, points: Sequence[LatLon]) -> RouteResult:
        dist = path_length_m(points)
        return RouteResult(
            distance_m=dist,
            duration_min=(dist / 1000.0) * self.minutes_per_km,
            path=tuple(points),
            is_approximate=True,
        )

    def _store(self, key: str, result: RouteResult) -> None:
        self._cache[key] = result
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)


def parse_route(data: Any) -> RouteResult:
    if not isinstance(data, dict):
        raise RoutingError(f"Unexpected OSRM payload: {data!r}")
    if data.get("code") != "Ok":
        raise RoutingError(f"OSRM response error: {data.get('code')} {data.get('message', '')}".strip())
    try:
        route = data["routes"][0]
        distance = float(route["distance"])
        duration_s = float(route["duration"])
        geometry: List[LatLon] = polyline.decode(route["geometry"])
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise RoutingError(f"Malformed OSRM route: {exc}") from exc
    if distance < 0 or duration_s < 0:
        raise RoutingError("OSRM returned a negative distance or duration")
    return RouteResult(
        distance_m=distance,
        duration_min=duration_s / 60.0,
        path=tuple((float(lat), float(lon)) for lat, lon in geometry),
        is_approximate=False,
    )
