class PickupRouteError(Exception):
    """Base class for every error raised by pickup_route."""


class GeocodingError(PickupRouteError):
    pass


class AddressNotFound(GeocodingError):
    """Forward geocoding found no match for the given text."""


class GeocodingUnavailable(GeocodingError):
    """The geocoding service could not be reached or answered with an error."""


class OptimizationUnavailable(PickupRouteError):
    """Fewer than 3 points, or the optimization service failed."""


class MapInitializationFailure(PickupRouteError):
    """The map surface could not be created, or was used after close()."""


class RoutingError(PickupRouteError):
    """Routing engine failure. Never leaves RouteClient.compute_route."""
