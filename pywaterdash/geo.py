"""Distances and map framing for tanker dispatch."""
import math
from typing import Optional, Tuple, Union

from .models import DispatchRoute, GeoPoint

EARTH_RADIUS_KM = 6371

PointLike = Union[GeoPoint, Tuple[float, float]]


def _coords(point: PointLike) -> Tuple[float, float]:
    if isinstance(point, GeoPoint):
        return point.latitude, point.longitude
    return point[0], point[1]


def distance_km(a: PointLike, b: PointLike) -> float:
    """
    Calculate the great-circle distance between two points on Earth (in km).
    Uses the Haversine formula. Inputs are not validated; NaN propagates.
    """
    lat1, lon1 = _coords(a)
    lat2, lon2 = _coords(b)

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2)
    # rounding can push h just past 1 for antipodal points; min keeps NaN
    h = min(h, 1.0)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def midpoint(a: PointLike, b: PointLike) -> GeoPoint:
    """Arithmetic centre of two points, used to frame both on one map."""
    lat1, lon1 = _coords(a)
    lat2, lon2 = _coords(b)
    return GeoPoint(latitude=(lat1 + lat2) / 2, longitude=(lon1 + lon2) / 2)


def format_coordinates(point: PointLike) -> str:
    """``12.971600°N, 77.594600°E``; negative values take S and W."""
    lat, lon = _coords(point)
    return f"{abs(lat):.6f}°{'N' if lat >= 0 else 'S'}, {abs(lon):.6f}°{'E' if lon >= 0 else 'W'}"


def maps_url(point: PointLike) -> str:
    lat, lon = _coords(point)
    return f"https://www.google.com/maps?q={lat},{lon}"


def plan_dispatch(destination: PointLike, origin: Optional[PointLike] = None) -> DispatchRoute:
    """Frame a service request location and, when known, the tanker's.

    Without a tanker position the map centres on the request at zoom 15;
    with one it centres between the two at zoom 13 and reports the
    straight-line distance rounded to two decimals.
    """
    lat, lon = _coords(destination)
    target = GeoPoint(latitude=lat, longitude=lon)

    if origin is None:
        return DispatchRoute(destination=target, center=target, zoom=15)

    origin_lat, origin_lon = _coords(origin)
    start = GeoPoint(latitude=origin_lat, longitude=origin_lon)
    return DispatchRoute(
        destination=target,
        origin=start,
        center=midpoint(start, target),
        zoom=13,
        distance_km=round(distance_km(start, target), 2),
    )
