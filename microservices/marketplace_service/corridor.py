"""
Geo corridor filter

Pure geometry for matching shipments to a traveler's route. No I/O: the
route is fetched elsewhere and handed in as a list of [lng, lat] vertices.

Distances follow the usual point-to-line approach: longitude is scaled by the
cosine of the segment's mean latitude, the foot of the perpendicular is found
on that local plane and clamped to the segment, then the great-circle
(haversine) distance to that foot is measured.
"""

import math
from collections import OrderedDict
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import GeoPoint, Shipment

EARTH_RADIUS_KM = 6371.0
DEFAULT_THRESHOLD_KM = 5.0
DEFAULT_EPSILON_DEG = 0.0001

Coordinate = Sequence[float]  # (lng, lat)


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two (lng, lat) points in kilometres"""
    lng1, lat1 = math.radians(a[0]), math.radians(a[1])
    lng2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def _segment_distance_km(p: Coordinate, a: Coordinate, b: Coordinate) -> float:
    # Longitude shrinks with latitude; scale it so the projection is metric
    k = math.cos(math.radians((a[1] + b[1]) / 2))
    dx, dy = b[0] - a[0], b[1] - a[1]
    vx, vy = dx * k, dy
    wx, wy = (p[0] - a[0]) * k, p[1] - a[1]

    c1 = wx * vx + wy * vy
    if c1 <= 0:
        return haversine_km(p, a)

    c2 = vx * vx + vy * vy
    if c2 <= c1:
        return haversine_km(p, b)

    t = c1 / c2
    foot = (a[0] + t * dx, a[1] + t * dy)
    return haversine_km(p, foot)


def point_to_route_distance_km(point: Coordinate, route: Sequence[Coordinate]) -> float:
    """
    Minimum distance from a point to any segment of the route.

    Raises:
        ValueError: route has fewer than two vertices
    """
    if len(route) < 2:
        raise ValueError("route needs at least two vertices")

    return min(
        _segment_distance_km(point, route[i], route[i + 1])
        for i in range(len(route) - 1)
    )


def _as_coordinate(point: Optional[GeoPoint]) -> Optional[Tuple[float, float]]:
    if point is None:
        return None
    return (point.lng, point.lat)


def is_within_corridor(
    shipment: Shipment,
    route: Sequence[Coordinate],
    threshold_km: float = DEFAULT_THRESHOLD_KM,
) -> bool:
    """Both pickup and dropoff must lie within threshold_km of the route"""
    pickup = _as_coordinate(shipment.pickup_location)
    dropoff = _as_coordinate(shipment.dropoff_location)
    if pickup is None or dropoff is None:
        return False

    return (
        point_to_route_distance_km(pickup, route) <= threshold_km
        and point_to_route_distance_km(dropoff, route) <= threshold_km
    )


def filter_shipments(
    route: Optional[Sequence[Coordinate]],
    shipments: Iterable[Shipment],
    threshold_km: float = DEFAULT_THRESHOLD_KM,
) -> List[Shipment]:
    """
    Keep shipments whose pickup and dropoff both lie along the route.

    With no route, or a route of fewer than two vertices, nothing can be
    measured and every candidate is returned unfiltered.
    """
    candidates = list(shipments)
    if not route or len(route) < 2:
        return candidates

    return [s for s in candidates if is_within_corridor(s, route, threshold_km)]


def points_differ(a: Optional[GeoPoint], b: Optional[GeoPoint], epsilon: float = DEFAULT_EPSILON_DEG) -> bool:
    """True when either coordinate moved by more than epsilon degrees"""
    if a is None or b is None:
        return a is not b
    return abs(a.lng - b.lng) > epsilon or abs(a.lat - b.lat) > epsilon


class RouteQueryTracker:
    """
    Remembers the last (origin, destination) and route per traveler so that a
    route is only recomputed when an endpoint actually moved.
    """

    def __init__(self, epsilon_deg: float = DEFAULT_EPSILON_DEG, max_entries: int = 1024):
        self.epsilon_deg = epsilon_deg
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[GeoPoint, GeoPoint, Optional[List[List[float]]]]]" = OrderedDict()

    def should_recompute(self, key: str, origin: GeoPoint, destination: GeoPoint) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        last_origin, last_destination, _ = entry
        return (
            points_differ(last_origin, origin, self.epsilon_deg)
            or points_differ(last_destination, destination, self.epsilon_deg)
        )

    def cached_route(self, key: str) -> Optional[List[List[float]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry[2]

    def remember(
        self,
        key: str,
        origin: GeoPoint,
        destination: GeoPoint,
        route: Optional[List[List[float]]],
    ) -> None:
        self._entries[key] = (origin, destination, route)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def forget(self, key: str) -> None:
        self._entries.pop(key, None)
