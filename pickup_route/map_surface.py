from __future__ import annotations

import logging
import os
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import folium

from .Waypoint import Role, WaypointView
from .config import DEFAULT_CENTER
from .errors import MapInitializationFailure
from .geo import bounds

LatLon = Tuple[float, float]
ClickHandler = Callable[[float, float], None]

log = logging.getLogger("pickup_route.map")

ROLE_COLORS = {
    Role.START: "green",
    Role.END: "red",
    Role.PICKUP: "blue",
    Role.WAYPOINT: "gray",
}
ROUTE_COLOR = "#3b82f6"
APPROX_COLOR = "#f59e0b"


class MapSurface(Protocol):
    def set_center(self, center: LatLon) -> None: ...
    def set_markers(self, views: Sequence[WaypointView]) -> None: ...
    def set_route(self, path: Sequence[LatLon], approximate: bool) -> None: ...
    def clear_route(self) -> None: ...
    def clear(self) -> None: ...
    def on_click(self, handler: ClickHandler) -> None: ...
    def close(self) -> None: ...


class FoliumMapSurface:
    """
    Keeps markers and the route line as plain state and renders them into a
    folium.Map on demand. Use as a context manager so close() always runs.
    """

    def __init__(self, center: LatLon = DEFAULT_CENTER, zoom_start: int = 13,
                 tiles: str = "OpenStreetMap", auto_fit: bool = True):
        self.center = center
        self.zoom_start = zoom_start
        self.tiles = tiles
        self.auto_fit = auto_fit
        self.markers: List[WaypointView] = []
        self.route: Optional[Tuple[Tuple[LatLon, ...], bool]] = None
        self._handlers: List[ClickHandler] = []
        self._open = False

    def __enter__(self) -> "FoliumMapSurface":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        self._build()  # fail early on a bad centre / tile config
        self._open = True

    def close(self) -> None:
        self.markers = []
        self.route = None
        self._handlers = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def _check(self) -> None:
        if not self._open:
            raise MapInitializationFailure("Map surface is not open")

    # -------------------------
    # surface operations
    # -------------------------
    def set_center(self, center: LatLon) -> None:
        self._check()
        self.center = center

    def set_markers(self, views: Sequence[WaypointView]) -> None:
        self._check()
        self.markers = list(views)

    def set_route(self, path: Sequence[LatLon], approximate: bool) -> None:
        self._check()
        self.route = (tuple(path), approximate)

    def clear_route(self) -> None:
        self._check()
        self.route = None

    def clear(self) -> None:
        self._check()
        self.markers = []
        self.route = None

    def on_click(self, handler: ClickHandler) -> None:
        self._check()
        self._handlers.append(handler)

    def dispatch_click(self, lat: float, lon: float) -> None:
        self._check()
        for handler in list(self._handlers):
            handler(lat, lon)

    # -------------------------
    # rendering
    # -------------------------
    def _build(self) -> folium.Map:
        try:
            return folium.Map(location=list(self.center), zoom_start=self.zoom_start, tiles=self.tiles)
        except (TypeError, ValueError) as exc:
            raise MapInitializationFailure(f"Could not create map at {self.center!r}: {exc}") from exc

    def to_folium(self) -> folium.Map:
        self._check()
        m = self._build()

        for v in self.markers:
            lat, lon = v.coordinates
            popup = f"{v.address}<br>{lat:.6f}, {lon:.6f}"
            folium.Marker(
                [lat, lon],
                tooltip=v.address,
                popup=popup,
                icon=folium.Icon(color=ROLE_COLORS.get(v.role, "gray")),
            ).add_to(m)

        if self.route is not None and len(self.route[0]) >= 2:
            path, approximate = self.route
            if approximate:
                folium.PolyLine(path, color=APPROX_COLOR, weight=4, opacity=0.8, dash_array="6",
                                tooltip="Approximate route").add_to(m)
            else:
                folium.PolyLine(path, color=ROUTE_COLOR, weight=6, opacity=0.8).add_to(m)

        if self.auto_fit:
            pts = [v.coordinates for v in self.markers]
            if self.route is not None:
                pts += list(self.route[0])
            if len(pts) >= 2:
                b = bounds(pts)
                m.fit_bounds([[b["south"], b["west"]], [b["north"], b["east"]]], padding=(20, 20))
        return m

    def render(self) -> str:
        return self.to_folium().get_root().render()

    def save(self, path: str) -> str:
        m = self.to_folium()
        d = os.path.dirname(os.path.abspath(path))
        os.makedirs(d, exist_ok=True)
        m.save(path)
        log.info("map written to %s", path)
        return path
