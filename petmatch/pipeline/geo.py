"""Great-circle distance between two coordinates (haversine, spherical Earth)."""

import math
from typing import Protocol

EARTH_RADIUS_KM = 6371.0


class HasCoordinates(Protocol):
    @property
    def lat(self) -> float | None: ...

    @property
    def lng(self) -> float | None: ...


def distance_km(a: HasCoordinates, b: HasCoordinates) -> float:
    """Return the haversine distance between ``a`` and ``b`` in kilometres.

    Both points must carry coordinates; callers check ``has_coordinates`` first.
    """
    if a.lat is None or a.lng is None or b.lat is None or b.lng is None:
        msg = "distance_km requires both points to have coordinates"
        raise ValueError(msg)

    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    h = min(1.0, h)  # float drift near antipodes
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c
