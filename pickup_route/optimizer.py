import asyncio
import logging
from typing import List, Sequence, Tuple

import aiohttp

from .errors import OptimizationUnavailable
from .osrm import get_json, osrm_coords

LatLon = Tuple[float, float]

log = logging.getLogger("pickup_route.optimizer")

MIN_POINTS = 3


class RouteOptimizer:
    """
    Single-vehicle stop ordering through the OSRM trip service.
    The first point stays the start and the last stays the end.
    """

    def __init__(self, session: aiohttp.ClientSession, base_url: str,
                 profile: str = "driving", timeout_s: float = 10.0):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, session: aiohttp.ClientSession, settings) -> "RouteOptimizer":
        return cls(session, settings.osrm_url, settings.osrm_profile, settings.route_timeout_s)

    async def optimize(self, points: Sequence[LatLon]) -> List[int]:
        if len(points) < MIN_POINTS:
            raise OptimizationUnavailable(f"At least {MIN_POINTS} points required for optimization")

        url = f"{self.base_url}/trip/v1/{self.profile}/{osrm_coords(points)}"
        params = {"source": "first", "destination": "last",
                  "roundtrip": "false", "overview": "false"}
        try:
            data = await get_json(self.session, url, self.timeout_s, params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise OptimizationUnavailable(f"Route optimization failed: {str(exc) or type(exc).__name__}") from exc

        if not isinstance(data, dict) or data.get("code") != "Ok" or not data.get("trips"):
            raise OptimizationUnavailable("No optimized route found")

        try:
            # waypoints[i].waypoint_index is the visiting position of input i
            positions = [int(wp["waypoint_index"]) for wp in data["waypoints"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise OptimizationUnavailable("Malformed optimization answer") from exc

        if len(positions) != len(points) or sorted(positions) != list(range(len(points))):
            raise OptimizationUnavailable("Optimization answer is not a permutation of the input")

        order = sorted(range(len(points)), key=lambda i: positions[i])
        log.info("optimized order %s", order)
        return order
