"""Priority-aware nearest-neighbor route construction.

Routes are built in two phases. URGENT and HIGH orders are visited first in
priority order, regardless of where they are, so that an urgent drop-off far
from the courier's other stops is never deferred by geography. Whatever daily
capacity remains is then filled with MEDIUM and LOW orders using a greedy
nearest-neighbor walk from the last routed position.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...errors import MissingCourierLocation
from ...models.domain import CourierForRoute, DeliveryPoint, GeoPosition
from ..geospatial import DEFAULT_SPEED_KMH, haversine_km, travel_minutes
from .models import (
    ExcludedPoint,
    ExclusionReason,
    RoutePlan,
    RouteStop,
    Waypoint,
    WaypointKind,
)

DEFAULT_STOP_MINUTES = 10
DEFAULT_PICKUP_MINUTES = 5


class _RouteBuilder:
    """Accumulates legs, totals and exclusions while a route is being built."""

    def __init__(self, courier: CourierForRoute, start: GeoPosition, default_stop_minutes: int) -> None:
        self.courier = courier
        self.position = start
        self.speed_kmh = courier.speed_kmh(DEFAULT_SPEED_KMH)
        self.default_stop_minutes = default_stop_minutes
        self.route: list[DeliveryPoint] = []
        self.stops: list[RouteStop] = []
        self.excluded: list[ExcludedPoint] = []
        self.total_distance = 0.0
        self.total_duration = 0.0

    @property
    def full(self) -> bool:
        return len(self.route) >= self.courier.max_deliveries_per_day

    def too_far(self, distance_km: float) -> bool:
        limit = self.courier.max_distance_km
        return limit is not None and distance_km > limit

    def exclude(self, point: DeliveryPoint, reason: ExclusionReason) -> None:
        self.excluded.append(ExcludedPoint(point=point, reason=reason))

    def visit(self, point: DeliveryPoint, distance_km: float) -> None:
        travel = travel_minutes(distance_km, self.speed_kmh)
        handling = point.handling_minutes(self.default_stop_minutes)
        self.total_distance += distance_km
        self.total_duration += travel + handling
        self.route.append(point)
        self.stops.append(
            RouteStop(
                point_id=point.id,
                sequence=len(self.route),
                distance_from_prev_km=round(distance_km, 3),
                travel_min=travel,
                handling_min=handling,
                arrival_min=int(self.total_duration) - handling,
            )
        )
        self.position = point.position

    def build(self) -> RoutePlan:
        return RoutePlan(
            courier_id=self.courier.id,
            zone_id=self.courier.zone_id,
            delivery_points=list(self.route),
            total_distance_km=round(self.total_distance, 2),
            total_duration_min=round(self.total_duration),
            stops=self.stops,
            excluded=self.excluded,
        )


def _split_by_priority(points: Sequence[DeliveryPoint]) -> tuple[list[DeliveryPoint], list[DeliveryPoint]]:
    ordered = sorted(points, key=lambda point: point.priority.rank, reverse=True)
    high = [point for point in ordered if point.priority.is_high]
    normal = [point for point in ordered if not point.priority.is_high]
    return high, normal


def plan_route(
    courier: CourierForRoute,
    delivery_points: Sequence[DeliveryPoint],
    *,
    default_stop_minutes: int = DEFAULT_STOP_MINUTES,
) -> RoutePlan:
    """Order ``delivery_points`` into a route for ``courier``.

    Points that cannot be routed are reported in ``RoutePlan.excluded``: those
    whose leg would exceed the courier's ``max_distance_km`` and those left
    over once ``max_deliveries_per_day`` is reached.

    Raises:
        MissingCourierLocation: the courier has no current position. Callers
            resolve a fallback start position before planning.
    """
    if courier.current_position is None:
        raise MissingCourierLocation(courier.id)

    builder = _RouteBuilder(courier, courier.current_position, default_stop_minutes)
    high_priority, normal_priority = _split_by_priority(delivery_points)

    # Phase 1: high priority in priority order, skipping out-of-range points.
    pending_high = list(high_priority)
    while pending_high and not builder.full:
        point = pending_high.pop(0)
        distance = haversine_km(builder.position, point.position)
        if builder.too_far(distance):
            builder.exclude(point, ExclusionReason.MAX_DISTANCE)
            continue
        builder.visit(point, distance)

    # Phase 2: nearest neighbor over the rest; out-of-range candidates are dropped for good.
    candidates = list(normal_priority)
    while candidates and not builder.full:
        distances = [haversine_km(builder.position, candidate.position) for candidate in candidates]
        nearest_idx = min(range(len(candidates)), key=distances.__getitem__)
        nearest = candidates[nearest_idx]
        candidates = [candidate for idx, candidate in enumerate(candidates) if idx != nearest_idx]
        if builder.too_far(distances[nearest_idx]):
            builder.exclude(nearest, ExclusionReason.MAX_DISTANCE)
            continue
        builder.visit(nearest, distances[nearest_idx])

    for point in [*pending_high, *candidates]:
        builder.exclude(point, ExclusionReason.CAPACITY)

    plan = builder.build()
    if plan.excluded:
        logging.info(
            f"Route for courier '{courier.id}' left {len(plan.excluded)} of "
            f"{len(delivery_points)} delivery points unrouted"
        )
    return plan


def _dropoff_waypoint(point: DeliveryPoint, sequence_number: int) -> Waypoint:
    return Waypoint(
        id=point.id,
        kind=WaypointKind.DROPOFF,
        position=point.position,
        address=point.address,
        sequence_number=sequence_number,
        status=point.status,
        customer_name=point.customer_name or "Customer",
        estimated_arrival=point.estimated_arrival,
    )


def _pickup_waypoint(point: DeliveryPoint, position: GeoPosition, sequence_number: int) -> Waypoint:
    return Waypoint(
        id=f"pickup-{point.id}",
        kind=WaypointKind.PICKUP,
        position=position,
        address=point.pickup_address or "Business Location",
        sequence_number=sequence_number,
        status="PICKUP",
        customer_name="Business",
    )


def plan_route_with_waypoint_details(
    courier: CourierForRoute,
    delivery_points: Sequence[DeliveryPoint],
    *,
    pickup_minutes: int = DEFAULT_PICKUP_MINUTES,
    default_stop_minutes: int = DEFAULT_STOP_MINUTES,
) -> RoutePlan:
    """Plan a route and render it as map waypoints.

    Sequencing is exactly that of :func:`plan_route`. The rendered route starts
    at the courier's location and, for every order collected from a business,
    inserts a pickup waypoint ahead of the drop-off. Totals and stops are
    recomputed over the rendered path, so pickup legs and pickup time count
    towards the drop-off that follows them.
    """
    plan = plan_route(courier, delivery_points, default_stop_minutes=default_stop_minutes)
    speed = courier.speed_kmh(DEFAULT_SPEED_KMH)

    position = courier.current_position
    waypoints = [
        Waypoint(
            id="courier-location",
            kind=WaypointKind.CURRENT,
            position=position,
            address="Current Location",
            sequence_number=1,
            status="CURRENT",
            customer_name="Courier Location",
        )
    ]
    total_distance = 0.0
    total_duration = 0
    stops: list[RouteStop] = []

    # Each stop's leg and travel time cover the pickup detour before its drop-off.
    for point in plan.delivery_points:
        leg_distance = 0.0
        leg_minutes = 0
        if point.pickup_position is not None:
            leg = haversine_km(position, point.pickup_position)
            leg_distance += leg
            leg_minutes += travel_minutes(leg, speed) + pickup_minutes
            waypoints.append(_pickup_waypoint(point, point.pickup_position, len(waypoints) + 1))
            position = point.pickup_position

        leg = haversine_km(position, point.position)
        leg_distance += leg
        leg_minutes += travel_minutes(leg, speed)
        handling = point.handling_minutes(default_stop_minutes)
        total_distance += leg_distance
        total_duration += leg_minutes
        stops.append(
            RouteStop(
                point_id=point.id,
                sequence=len(stops) + 1,
                distance_from_prev_km=round(leg_distance, 3),
                travel_min=leg_minutes,
                handling_min=handling,
                arrival_min=total_duration,
            )
        )
        total_duration += handling
        waypoints.append(_dropoff_waypoint(point, len(waypoints) + 1))
        position = point.position

    plan.waypoints = waypoints
    plan.stops = stops
    plan.total_distance_km = round(total_distance, 2)
    plan.total_duration_min = total_duration
    return plan


def plan_order_route(
    point: DeliveryPoint,
    *,
    pickup_fallback: GeoPosition,
    speed_kmh: Optional[float] = None,
    default_stop_minutes: int = DEFAULT_STOP_MINUTES,
    courier_id: str = "",
) -> RoutePlan:
    """Two-stop route for a single order: business pickup then customer drop-off."""

    pickup = point.pickup_position or pickup_fallback
    distance = haversine_km(pickup, point.position)
    travel = travel_minutes(distance, speed_kmh or DEFAULT_SPEED_KMH)
    handling = point.handling_minutes(default_stop_minutes)

    return RoutePlan(
        courier_id=courier_id,
        delivery_points=[point],
        total_distance_km=round(distance, 2),
        total_duration_min=travel + handling,
        stops=[
            RouteStop(
                point_id=point.id,
                sequence=1,
                distance_from_prev_km=round(distance, 3),
                travel_min=travel,
                handling_min=handling,
                arrival_min=travel,
            )
        ],
        waypoints=[
            Waypoint(
                id="pickup",
                kind=WaypointKind.PICKUP,
                position=pickup,
                address=point.pickup_address or "Business Location",
                sequence_number=1,
                status="PICKUP",
                customer_name="Business",
            ),
            _dropoff_waypoint(point, 2),
        ],
    )
