from .MapSync import MapSyncController, SyncState
from .RouteResult import RouteResult
from .Waypoint import Role, Waypoint, WaypointView, role_for
from .WaypointStore import Change, WaypointStore
from .config import Settings
from .errors import (AddressNotFound, GeocodingError, GeocodingUnavailable, MapInitializationFailure,
                     OptimizationUnavailable, PickupRouteError, RoutingError)
from .geocoding import Geocoder, GeocodeResult
from .map_surface import FoliumMapSurface, MapSurface
from .optimizer import RouteOptimizer
from .osrm import RateLimiter, RouteClient

__version__ = "0.1.0"
