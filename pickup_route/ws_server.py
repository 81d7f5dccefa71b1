import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Set

import aiohttp
from aiohttp import web

from .MapSync import MapSyncController
from .RouteResult import RouteResult
from .Waypoint import WaypointView
from .WaypointStore import WaypointStore
from .config import Settings
from .errors import (AddressNotFound, GeocodingUnavailable, MapInitializationFailure,
                     OptimizationUnavailable, PickupRouteError)
from .geocoding import Geocoder
from .map_surface import FoliumMapSurface
from .optimizer import RouteOptimizer
from .osrm import RouteClient
from .ws_bus import pump, put_latest, send_error

log = logging.getLogger("pickup_route.server")

ERROR_CODES = {
    AddressNotFound: "address_not_found",
    GeocodingUnavailable: "geocoding_unavailable",
    OptimizationUnavailable: "optimization_unavailable",
    MapInitializationFailure: "map_initialization_failure",
}

# bad client input; reported back as error events
CLIENT_ERRORS = (PickupRouteError, KeyError, ValueError, TypeError, IndexError)


def create_uuid():
    return str(uuid.uuid4())


def error_code(exc: Exception) -> str:
    for cls, code in ERROR_CODES.items():
        if isinstance(exc, cls):
            return code
    return "bad_request"


def error_event(exc: Exception) -> Dict[str, Any]:
    return {"type": "error", "error": error_code(exc), "message": str(exc)}


class MapSession:
    """One map being edited over one websocket: own store, client and surface."""

    def __init__(self, http: aiohttp.ClientSession, settings: Settings, queue_size: int = 100):
        self.session_id = create_uuid()
        self.tasks: Set[asyncio.Task] = set()
        self.events: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.store = WaypointStore()
        self.surface = FoliumMapSurface(center=settings.default_center)
        self.surface.open()
        self.controller = MapSyncController(
            self.store,
            RouteClient.from_settings(http, settings),
            self.surface,
            geocoder=Geocoder.from_settings(http, settings),
            optimizer=RouteOptimizer.from_settings(http, settings),
            on_route=self._on_route,
            on_waypoints=self._on_waypoints,
            debounce_s=settings.debounce_s,
        )

    def _on_route(self, result: RouteResult) -> None:
        put_latest(self.events, {"type": "route", "data": result.as_payload()})

    def _on_waypoints(self, views: List[WaypointView]) -> None:
        put_latest(self.events, {"type": "waypoints", "waypoints": [v.as_payload() for v in views]})

    def handle(self, msg: Dict[str, Any]) -> None:
        """Apply one client message. Service calls run as tasks so later messages are not held up."""
        kind = msg.get("type")
        c = self.controller

        if kind == "click":
            self.surface.dispatch_click(float(msg["lat"]), float(msg["lon"]))
            put_latest(self.events, {"type": "created", "id": self.store.ids()[-1]})
        elif kind == "add_address":
            self._spawn(self._add_address(str(msg["address"])))
        elif kind == "update_address":
            self.store.update_address(msg["id"], str(msg["address"]))
        elif kind == "remove":
            c.remove(msg["id"])
        elif kind == "reorder":
            c.reorder(msg["ids"])
        elif kind == "optimize":
            self._spawn(c.optimize())
        elif kind == "clear":
            c.clear()
        else:
            raise ValueError(f"Unknown message type: {kind!r}")

    async def _add_address(self, address: str) -> None:
        waypoint_id = await self.controller.add_address(address)
        put_latest(self.events, {"type": "created", "id": waypoint_id})

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, CLIENT_ERRORS):
            log.info("session %s: %s", self.session_id, exc)
            put_latest(self.events, error_event(exc))
        else:
            log.error("session %s: task failed", self.session_id, exc_info=exc)

    def close(self) -> None:
        for task in list(self.tasks):
            task.cancel()
        self.tasks.clear()
        self.controller.close()


async def ws_handler(request: web.Request) -> web.WebSocketResponse:
    app = request.app
    ws = web.WebSocketResponse(heartbeat=30)
    await ws.prepare(request)

    try:
        session = MapSession(app["http"], app["settings"])
    except MapInitializationFailure as exc:
        await ws.send_json(error_event(exc))
        await ws.close()
        return ws

    sessions: Dict[str, MapSession] = app["sessions"]
    sessions[session.session_id] = session
    put_latest(session.events, {"type": "session", "session_id": session.session_id})
    pump_task = asyncio.ensure_future(pump(session.events, ws))
    log.info("session %s opened", session.session_id)

    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    payload = json.loads(msg.data)
                    if not isinstance(payload, dict):
                        raise ValueError("message must be a JSON object")
                    session.handle(payload)
                except CLIENT_ERRORS as exc:
                    log.info("session %s: %s", session.session_id, exc)
                    await send_error(session.events, error_code(exc), str(exc))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                log.warning("session %s closed with %s", session.session_id, ws.exception())
                break
    finally:
        pump_task.cancel()
        session.close()
        sessions.pop(session.session_id, None)
        log.info("session %s closed", session.session_id)
    return ws


async def map_handler(request: web.Request) -> web.Response:
    session = request.app["sessions"].get(request.match_info["session_id"])
    if session is None:
        raise web.HTTPNotFound(text="unknown session")
    return web.Response(text=session.surface.render(), content_type="text/html")


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "sessions": len(request.app["sessions"])})


async def _on_startup(app: web.Application) -> None:
    app["http"] = aiohttp.ClientSession()


async def _on_cleanup(app: web.Application) -> None:
    for session in list(app["sessions"].values()):
        session.close()
    app["sessions"].clear()
    await app["http"].close()


def create_app(settings: Settings) -> web.Application:
    app = web.Application()
    app["settings"] = settings
    app["sessions"] = {}
    app.router.add_get("/ws", ws_handler)
    app.router.add_get("/sessions/{session_id}/map", map_handler)
    app.router.add_get("/health", health_handler)
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


def start_server(settings: Settings) -> None:
    web.run_app(create_app(settings), host=settings.host, port=settings.port)
