"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from shapely.geometry import Point, Polygon

from ..errors import InvalidArgument
from ..models.domain import GeoPosition

EARTH_RADIUS_KM = 6371.0
DEFAULT_SPEED_KMH = 30.0
DEFAULT_CLUSTER_RADIUS_KM = 2.0

T = TypeVar("T")


def degrees_to_radians(degrees: float) -> float:
    return degrees * (math.pi / 180)


def haversine_km(origin: GeoPosition, destination: GeoPosition) -> float:
    """Compute distance between two positions using the Haversine formula."""

    phi1 = degrees_to_radians(origin.latitude)
    phi2 = degrees_to_radians(destination.latitude)
    d_phi = degrees_to_radians(destination.latitude - origin.latitude)
    d_lambda = degrees_to_radians(destination.longitude - origin.longitude)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_within_radius(center: GeoPosition, point: GeoPosition, radius_km: float) -> bool:
    return haversine_km(center, point) <= radius_km


def travel_minutes(distance_km: float, speed_kmh: float = DEFAULT_SPEED_KMH) -> int:
    """Whole minutes needed to cover ``distance_km``, rounded up."""

    if speed_kmh <= 0:
        raise InvalidArgument("speed_kmh must be positive")
    return math.ceil(distance_km / speed_kmh * 60)


def estimate_travel_time_minutes(
    origin: GeoPosition,
    destination: GeoPosition,
    speed_kmh: float = DEFAULT_SPEED_KMH,
) -> int:
    """Estimate travel time between two positions.

    The ceiling is deliberate: a leg shorter than a minute still costs one
    minute, so a non-zero distance never estimates to zero.
    """

    return travel_minutes(haversine_km(origin, destination), speed_kmh)


def centroid(points: Iterable[GeoPosition]) -> GeoPosition:
    """Arithmetic mean of latitudes and longitudes."""

    positions = list(points)
    if not positions:
        raise InvalidArgument("Cannot calculate the centroid of an empty set of points.")
    lat = sum(p.latitude for p in positions) / len(positions)
    lon = sum(p.longitude for p in positions) / len(positions)
    return GeoPosition(latitude=lat, longitude=lon)


def _identity(item):
    return item


def sort_by_proximity(
    reference: GeoPosition,
    items: Iterable[T],
    key: Optional[Callable[[T], GeoPosition]] = None,
) -> list[T]:
    """Return ``items`` ordered by distance from ``reference``; ties keep input order."""

    position_of = key or _identity
    return sorted(items, key=lambda item: haversine_km(reference, position_of(item)))


def cluster_by_proximity(
    items: Sequence[T],
    radius_km: float = DEFAULT_CLUSTER_RADIUS_KM,
    key: Optional[Callable[[T], GeoPosition]] = None,
) -> list[list[T]]:
    """Greedy single-pass clustering around seed points.

    Each unvisited item, in input order, seeds a cluster that absorbs every
    other unvisited item within ``radius_km`` of the seed (not of the cluster
    centroid). Results therefore depend on input order: two items that are
    each close to a seed end up together even when they are far apart from
    one another.
    """

    position_of = key or _identity
    positions = [position_of(item) for item in items]
    visited = [False] * len(positions)
    clusters: list[list[T]] = []

    for seed_idx, seed in enumerate(positions):
        if visited[seed_idx]:
            continue
        visited[seed_idx] = True
        cluster = [items[seed_idx]]
        for idx, position in enumerate(positions):
            if visited[idx]:
                continue
            if haversine_km(seed, position) <= radius_km:
                cluster.append(items[idx])
                visited[idx] = True
        clusters.append(cluster)
    return clusters


def point_in_polygon(position: GeoPosition, polygon_coords: Sequence[tuple[float, float]]) -> bool:
    """Return True if the position is inside the polygon denoted by (lat, lon) pairs."""

    polygon = Polygon([(lng, lat) for lat, lng in polygon_coords])
    return polygon.contains(Point(position.longitude, position.latitude))
