from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import Callable, List, Optional, Sequence, Set, Tuple

from .RouteResult import RouteResult
from .Waypoint import WaypointView
from .WaypointStore import Change, WaypointStore
from .errors import OptimizationUnavailable
from .geo import route_key
from .map_surface import MapSurface
from .osrm import RouteClient

LatLon = Tuple[float, float]
RouteCallback = Callable[[RouteResult], None]
WaypointsCallback = Callable[[List[WaypointView]], None]

log = logging.getLogger("pickup_route.sync")


class SyncState(Enum):
    IDLE = auto()
    PENDING_DEBOUNCE = auto()
    COMPUTING = auto()


class MapSyncController:
    """
    Ties a WaypointStore to a RouteClient and a map surface.

    Every structural store change bumps `generation` and re-arms the debounce
    timer. A computation only gets applied if, when it finishes, its
    generation is still current and its route key still matches the store.

    Must be built inside a running event loop: debounce timers and background
    tasks are scheduled on the loop captured here.
    """

    def __init__(
            self,
            store: WaypointStore,
            route_client: RouteClient,
            surface: MapSurface,
            geocoder=None,
            optimizer=None,
            on_route: Optional[RouteCallback] = None,
            on_waypoints: Optional[WaypointsCallback] = None,
            debounce_s: float = 0.8,
    ):
        self.store = store
        self.route_client = route_client
        self.surface = surface
        self.geocoder = geocoder
        self.optimizer = optimizer
        self.on_route = on_route
        self.on_waypoints = on_waypoints
        self.debounce_s = debounce_s
        # RuntimeError here, before any store listener is attached
        self._loop = asyncio.get_running_loop()

        self.state = SyncState.IDLE
        self.generation = 0
        self.route: RouteResult = RouteResult.empty()
        self.displayed_key: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._focus_sent = False

        self.store.subscribe(self._on_store_change)
        self.surface.on_click(self._on_map_click)

    # -------------------------
    # state
    # -------------------------
    def _set_state(self, state: SyncState) -> None:
        self.state = state
        if state is SyncState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def _key(self, points: Sequence[LatLon]) -> str:
        return route_key(points, self.route_client.precision)

    async def wait_idle(self) -> None:
        while True:
            await self._idle.wait()
            # let callbacks scheduled in the same tick run before trusting IDLE
            await asyncio.sleep(0)
            if self.state is SyncState.IDLE:
                return

    async def settle(self) -> None:
        """wait_idle() plus any background address lookups."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.wait_idle()

    # -------------------------
    # store events
    # -------------------------
    def _on_store_change(self, change: Change, store: WaypointStore) -> None:
        self._refresh_markers()
        if change is Change.STRUCTURE:
            self._on_structure_changed()

    def _refresh_markers(self) -> None:
        views = self.store.views()
        if not self._focus_sent and self.store.focus is not None:
            self.surface.set_center(self.store.focus)
            self._focus_sent = True
        if not views:
            self._focus_sent = False
        self.surface.set_markers(views)
        if self.on_waypoints is not None:
            self.on_waypoints(views)

    def _on_structure_changed(self) -> None:
        self.generation += 1
        self._cancel_timer()
        points = self.store.coordinates()

        if len(points) < 2:
            self.surface.clear_route()
            self.displayed_key = None
            self._apply(RouteResult.empty())
            self._set_state(SyncState.IDLE)
            return

        key = self._key(points)
        if key == self.displayed_key:
            # back to what is already on screen; anything in flight is stale now
            self._set_state(SyncState.IDLE)
            return

        self._timer = self._loop.call_later(self.debounce_s, self._start_compute, self.generation, points, key)
        self._set_state(SyncState.PENDING_DEBOUNCE)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # -------------------------
    # computation
    # -------------------------
    def _start_compute(self, generation: int, points: List[LatLon], key: str) -> None:
        self._timer = None
        if generation != self.generation:
            return
        self._set_state(SyncState.COMPUTING)
        self._spawn(self._compute(generation, points, key))

    async def _compute(self, generation: int, points: List[LatLon], key: str) -> None:
        log.debug("computing route gen=%d key=%s", generation, key)
        result = await self.route_client.compute_route(points)

        if generation != self.generation or key != self._key(self.store.coordinates()):
            log.info("discarding stale route for generation %d (current %d)", generation, self.generation)
            return

        self.surface.set_route(result.path, result.is_approximate)
        self.displayed_key = key
        self._apply(result)
        self._set_state(SyncState.IDLE)

    def _apply(self, result: RouteResult) -> None:
        self.route = result
        if self.on_route is not None:
            self.on_route(result)

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("background task failed", exc_info=exc)
            if self.state is SyncState.COMPUTING and not self._timer:
                self._set_state(SyncState.IDLE)

    # -------------------------
    # user actions
    # -------------------------
    def _on_map_click(self, lat: float, lon: float) -> None:
        self.add_point(lat, lon)

    def add_point(self, lat: float, lon: float) -> str:
        """Add a clicked point now; its address arrives later."""
        waypoint_id = self.store.add((lat, lon))
        if self.geocoder is not None:
            self._spawn(self._resolve_address(waypoint_id, (lat, lon)))
        return waypoint_id

    async def _resolve_address(self, waypoint_id: str, coordinates: LatLon) -> None:
        address = await self.geocoder.reverse_geocode(coordinates)
        if waypoint_id in self.store:
            self.store.update_address(waypoint_id, address)

    async def add_address(self, text: str) -> str:
        if self.geocoder is None:
            raise RuntimeError("No geocoder configured")
        found = await self.geocoder.forward_geocode(text)
        return self.store.add(found.coordinates, found.display_name)

    def remove(self, waypoint_id: str) -> None:
        self.store.remove(waypoint_id)

    def reorder(self, ids: Sequence[str]) -> None:
        self.store.reorder(ids)

    def clear(self) -> None:
        self.store.clear()

    async def optimize(self) -> List[str]:
        if self.optimizer is None:
            raise OptimizationUnavailable("No optimizer configured")
        ids = self.store.ids()
        points = self.store.coordinates()
        order = await self.optimizer.optimize(points)
        if self.store.ids() != ids:
            raise OptimizationUnavailable("Waypoints changed while optimizing")
        new_ids = [ids[i] for i in order]
        self.store.reorder(new_ids)
        return new_ids

    def close(self) -> None:
        self._cancel_timer()
        self.generation += 1
        self.store.unsubscribe(self._on_store_change)
        self.surface.close()
        self._set_state(SyncState.IDLE)
