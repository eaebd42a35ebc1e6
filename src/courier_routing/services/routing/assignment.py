"""Spread delivery points across couriers, zone by zone."""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol, Sequence

from ...models.domain import CourierForRoute, DeliveryPoint, GeoPosition
from ..geospatial import point_in_polygon
from .models import AssignmentResult


class ZoneLocator(Protocol):
    def locate_zone(self, position: GeoPosition) -> Optional[str]:
        ...


class NullZoneLocator:
    """Places every position outside any zone."""

    def locate_zone(self, position: GeoPosition) -> Optional[str]:
        return None


class PolygonZoneLocator:
    """Resolve zones from (lat, lon) boundary polygons; the first containing polygon wins."""

    def __init__(self, polygons: Mapping[str, Sequence[tuple[float, float]]]) -> None:
        self.polygons = {
            zone_id: list(coords) for zone_id, coords in polygons.items() if len(coords) >= 3
        }

    def locate_zone(self, position: GeoPosition) -> Optional[str]:
        for zone_id, coords in self.polygons.items():
            if point_in_polygon(position, coords):
                return zone_id
        return None


def _group_by_zone(
    delivery_points: Sequence[DeliveryPoint],
    zone_locator: ZoneLocator,
) -> dict[Optional[str], list[DeliveryPoint]]:
    groups: dict[Optional[str], list[DeliveryPoint]] = {}
    for point in delivery_points:
        zone_id = zone_locator.locate_zone(point.position)
        groups.setdefault(zone_id, []).append(point)
    return groups


def assign_deliveries(
    couriers: Sequence[CourierForRoute],
    delivery_points: Sequence[DeliveryPoint],
    *,
    zone_locator: Optional[ZoneLocator] = None,
) -> AssignmentResult:
    """Round-robin delivery points over the couriers eligible for each zone.

    A courier without a zone is eligible everywhere. Point ``i`` of a zone goes
    to eligible courier ``i mod N``; when that courier is already at its daily
    capacity the point is reported as unassigned rather than offered to the
    next courier. This is a load-spreading heuristic, not a least-cost
    assignment.
    """
    locator = zone_locator or NullZoneLocator()
    assignments: dict[str, list[DeliveryPoint]] = {}
    unassigned: list[DeliveryPoint] = []

    for zone_id, zone_points in _group_by_zone(delivery_points, locator).items():
        eligible = [courier for courier in couriers if not courier.zone_id or courier.zone_id == zone_id]
        if not eligible:
            logging.warning(
                f"No couriers available for zone '{zone_id or 'unzoned'}'; "
                f"{len(zone_points)} delivery points left unassigned"
            )
            unassigned.extend(zone_points)
            continue

        for idx, point in enumerate(zone_points):
            courier = eligible[idx % len(eligible)]
            bucket = assignments.setdefault(courier.id, [])
            if len(bucket) < courier.max_deliveries_per_day:
                bucket.append(point)
            else:
                unassigned.append(point)

    if unassigned:
        logging.info(f"{len(unassigned)} of {len(delivery_points)} delivery points could not be assigned")
    return AssignmentResult(assignments=assignments, unassigned=unassigned)
