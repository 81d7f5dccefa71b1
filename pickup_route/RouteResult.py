from dataclasses import dataclass
from typing import Any, Dict, Tuple

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class RouteResult:
    distance_m: float
    duration_min: float
    path: Tuple[LatLon, ...]
    is_approximate: bool = False

    @classmethod
    def empty(cls) -> "RouteResult":
        return cls(distance_m=0.0, duration_min=0.0, path=())

    def as_payload(self) -> Dict[str, Any]:
        return {
            "distance_m": self.distance_m,
            "duration_min": self.duration_min,
            "path": [[lat, lon] for lat, lon in self.path],
            "is_approximate": self.is_approximate,
        }
