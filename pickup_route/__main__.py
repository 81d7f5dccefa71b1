import argparse
import asyncio
import logging
import sys
import webbrowser
from typing import List, Tuple

import aiohttp

from . import logging_config
from .MapSync import MapSyncController
from .WaypointStore import WaypointStore
from .config import Settings
from .errors import PickupRouteError
from .geo import valid_latlon
from .geocoding import Geocoder
from .map_surface import FoliumMapSurface
from .optimizer import RouteOptimizer
from .osrm import RouteClient
from .ws_server import start_server

LatLon = Tuple[float, float]

log = logging.getLogger("pickup_route.cli")


def parse_point(text: str) -> LatLon:
    try:
        lat, lon = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected LAT,LON, got {text!r}")
    if not valid_latlon((lat, lon)):
        raise argparse.ArgumentTypeError(f"coordinates out of range: {text!r}")
    return lat, lon


async def plan(settings: Settings, points: List[LatLon], optimize: bool, out: str) -> str:
    async with aiohttp.ClientSession() as http:
        with FoliumMapSurface(center=points[0]) as surface:
            controller = MapSyncController(
                WaypointStore(),
                RouteClient.from_settings(http, settings),
                surface,
                geocoder=Geocoder.from_settings(http, settings),
                optimizer=RouteOptimizer.from_settings(http, settings),
                debounce_s=0.0,
            )
            for lat, lon in points:
                controller.add_point(lat, lon)
            await controller.settle()

            if optimize:
                await controller.optimize()
                await controller.settle()

            r = controller.route
            for v in controller.store.views():
                log.info("%-7s %s (%.6f, %.6f)", v.role.value, v.address, *v.coordinates)
            log.info("distance %.2f km, duration %.1f min%s", r.distance_m / 1000.0, r.duration_min,
                     " (approximate)" if r.is_approximate else "")
            path = surface.save(out)
            controller.close()
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pickup_route", description="Pickup route planning")
    parser.add_argument("--log-level", default=None, help="overrides PICKUP_LOG_LEVEL")
    parser.add_argument("--env-file", default=None, help=".env file to load")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="run the websocket map server")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)

    p_plan = sub.add_parser("plan", help="route through points and write a map")
    p_plan.add_argument("points", nargs="+", type=parse_point, metavar="LAT,LON")
    p_plan.add_argument("--optimize", action="store_true", help="reorder stops with the OSRM trip service")
    p_plan.add_argument("--out", default="map.html")
    p_plan.add_argument("--open", action="store_true", help="open the map in a browser")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env(args.env_file)
    logging_config.configure(args.log_level or settings.log_level)

    if args.command == "serve":
        if args.host:
            settings.host = args.host
        if args.port:
            settings.port = args.port
        start_server(settings)
        return 0

    if len(args.points) < 2:
        log.error("plan needs at least 2 points")
        return 2
    try:
        path = asyncio.run(plan(settings, args.points, args.optimize, args.out))
    except PickupRouteError as exc:
        log.error("%s", exc)
        return 1
    if args.open:
        webbrowser.open(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
