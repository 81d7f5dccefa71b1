from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

LatLon = Tuple[float, float]


class Role(Enum):
    START = "start"
    END = "end"
    PICKUP = "pickup"
    WAYPOINT = "waypoint"


def role_for(index: int, count: int) -> Role:
    if index == 0:
        return Role.START
    if count >= 2 and index == count - 1:
        return Role.END
    return Role.PICKUP


@dataclass
class Waypoint:
    coordinates: LatLon
    address: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __eq__(self, other):
        if not isinstance(other, Waypoint):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)


@dataclass(frozen=True)
class WaypointView:
    """Waypoint plus its role at the moment the view was taken."""
    id: str
    coordinates: LatLon
    address: str
    role: Role

    def as_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lat": self.coordinates[0],
            "lon": self.coordinates[1],
            "address": self.address,
            "role": self.role.value,
        }
