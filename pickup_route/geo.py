import math
from typing import Dict, List, Sequence, Tuple

from .config import DEFAULT_CENTER

LatLon = Tuple[float, float]


def haversine_m(a: LatLon, b: LatLon) -> float:
    R = 6371000.0
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * R * math.asin(math.sqrt(x))


def cum_array(values: List[float]) -> List[float]:
    cum = [0.0]
    s = 0.0
    for v in values:
        s += v
        cum.append(s)
    return cum


def path_length_m(points: Sequence[LatLon]) -> float:
    seg = [haversine_m(points[i], points[i + 1]) for i in range(len(points) - 1)]
    return cum_array(seg)[-1]


def valid_latlon(p) -> bool:
    try:
        lat, lon = float(p[0]), float(p[1])
    except (TypeError, ValueError, IndexError):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def route_key(points: Sequence[LatLon], precision: int = 6) -> str:
    """Cache and staleness key: coordinates rounded to `precision`, in order."""
    # + 0.0 turns -0.0 into 0.0
    return ";".join(
        f"{round(lat, precision) + 0.0:.{precision}f},{round(lon, precision) + 0.0:.{precision}f}"
        for lat, lon in points
    )


def bounds(points: Sequence[LatLon], center: LatLon = DEFAULT_CENTER) -> Dict[str, float]:
    if not points:
        return {
            "north": center[0] + 0.01,
            "south": center[0] - 0.01,
            "east": center[1] + 0.01,
            "west": center[1] - 0.01,
        }
    lats = [p[0] for p in points]
    lons = [p[1] for p in points]
    return {"north": max(lats), "south": min(lats), "east": max(lons), "west": min(lons)}
