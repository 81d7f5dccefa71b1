from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Callable, List, Optional, Sequence, Tuple

from .Waypoint import Waypoint, WaypointView, role_for
from .geo import valid_latlon

LatLon = Tuple[float, float]

log = logging.getLogger("pickup_route.store")


class Change(Enum):
    STRUCTURE = auto()  # add / remove / reorder / clear
    ADDRESS = auto()    # label only, coordinates untouched


Listener = Callable[[Change, "WaypointStore"], None]


class WaypointStore:
    """
    Ordered, mutable list of pickup points for one map.
    Roles are derived from position on read, never stored.
    """

    def __init__(self) -> None:
        self._points: List[Waypoint] = []
        self._listeners: List[Listener] = []
        self._issued_ids: set[str] = set()
        self.focus: Optional[LatLon] = None

    # -------------------------
    # listeners
    # -------------------------
    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, change: Change) -> None:
        for listener in list(self._listeners):
            listener(change, self)

    # -------------------------
    # mutations
    # -------------------------
    def add(self, coordinates: LatLon, provisional_address: Optional[str] = None) -> str:
        if not valid_latlon(coordinates):
            raise ValueError(f"Invalid coordinates: {coordinates!r}")
        lat, lon = float(coordinates[0]), float(coordinates[1])
        label = provisional_address or f"Point {len(self._points) + 1}"

        wp = Waypoint(coordinates=(lat, lon), address=label)
        while wp.id in self._issued_ids:
            wp = Waypoint(coordinates=(lat, lon), address=label)
        self._issued_ids.add(wp.id)

        if not self._points:
            self.focus = (lat, lon)
        self._points.append(wp)
        log.debug("added %s at %.6f,%.6f", wp.id, lat, lon)
        self._notify(Change.STRUCTURE)
        return wp.id

    def update_address(self, waypoint_id: str, address: str) -> None:
        wp = self.get(waypoint_id)
        if wp.address == address:
            return
        wp.address = address
        self._notify(Change.ADDRESS)

    def remove(self, waypoint_id: str) -> None:
        wp = self.get(waypoint_id)
        self._points.remove(wp)
        log.debug("removed %s", waypoint_id)
        self._notify(Change.STRUCTURE)

    def reorder(self, new_ordered_ids: Sequence[str]) -> None:
        new_ordered_ids = list(new_ordered_ids)
        current = self.ids()
        if sorted(new_ordered_ids) != sorted(current) or len(set(new_ordered_ids)) != len(current):
            raise ValueError("reorder expects a permutation of the current waypoint ids")
        if new_ordered_ids == current:
            return
        by_id = {wp.id: wp for wp in self._points}
        self._points = [by_id[i] for i in new_ordered_ids]
        self._notify(Change.STRUCTURE)

    def clear(self) -> None:
        if not self._points:
            return
        self._points = []
        self._notify(Change.STRUCTURE)

    # -------------------------
    # reads
    # -------------------------
    def get(self, waypoint_id: str) -> Waypoint:
        for wp in self._points:
            if wp.id == waypoint_id:
                return wp
        raise KeyError(waypoint_id)

    def __contains__(self, waypoint_id: str) -> bool:
        return any(wp.id == waypoint_id for wp in self._points)

    def __len__(self) -> int:
        return len(self._points)

    def waypoints(self) -> List[Waypoint]:
        return list(self._points)

    def ids(self) -> List[str]:
        return [wp.id for wp in self._points]

    def coordinates(self) -> List[LatLon]:
        return [wp.coordinates for wp in self._points]

    def views(self) -> List[WaypointView]:
        n = len(self._points)
        return [
            WaypointView(id=wp.id, coordinates=wp.coordinates, address=wp.address, role=role_for(i, n))
            for i, wp in enumerate(self._points)
        ]
