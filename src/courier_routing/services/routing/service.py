"""Routing orchestration service."""

from __future__ import annotations

import logging
import threading
import weakref
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from ...config import settings
from ...errors import RecordNotFound
from ...models.domain import CourierForRoute, DeliveryPoint, GeoPosition
from ...persistence.database import (
    fetch_available_couriers,
    fetch_courier,
    fetch_courier_orders,
    fetch_order,
    fetch_orders_by_ids,
    fetch_plannable_orders,
    fetch_zone_polygons,
    persist_route_plan,
)
from ...persistence.filesystem import FileStorage
from ...schemas.routing import (
    AssignmentRequest,
    AssignmentResponse,
    ClusterModel,
    ClusterResponse,
    CourierSummaryModel,
    ExcludedPointModel,
    RouteOptimizationRequest,
    RoutePlanResponse,
    RoutePointModel,
    StartPoint,
)
from ..export.geojson import route_plan_to_feature_collection
from ..geospatial import centroid, cluster_by_proximity
from ..outputs.routing_formatter import route_plan_to_csv, route_plan_to_json
from .assignment import NullZoneLocator, PolygonZoneLocator, ZoneLocator, assign_deliveries
from .models import RoutePlan, Waypoint
from .planner import plan_order_route, plan_route, plan_route_with_waypoint_details

# Serializes read-plan-write for one courier inside this process. Planning runs
# in separate workers can still race on write-back. Entries disappear once no
# caller holds a reference to the lock.
_courier_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_courier_locks_guard = threading.Lock()


def _courier_lock(courier_id: str) -> threading.Lock:
    with _courier_locks_guard:
        return _courier_locks.setdefault(courier_id, threading.Lock())


def _fallback_position() -> GeoPosition:
    return GeoPosition(latitude=settings.fallback_latitude, longitude=settings.fallback_longitude)


def resolve_start_position(
    courier: CourierForRoute,
    delivery_points: Sequence[DeliveryPoint],
    start_point: Optional[GeoPosition] = None,
) -> CourierForRoute:
    """Pick where the route starts and return a courier placed there.

    Order of preference: an explicit start point, the courier's reported
    location, the first order's pickup location, the configured city default.
    """
    if start_point is not None:
        return courier.at(start_point)
    if courier.current_position is not None:
        return courier
    for point in delivery_points[:1]:
        if point.pickup_position is not None:
            logging.info(f"Courier '{courier.id}' has no location; starting at pickup of order {point.id}")
            return courier.at(point.pickup_position)
    logging.info(f"Courier '{courier.id}' has no location; starting at the city default")
    return courier.at(_fallback_position())


def _to_position(start_point: Optional[StartPoint]) -> Optional[GeoPosition]:
    if start_point is None:
        return None
    return GeoPosition(latitude=start_point.latitude, longitude=start_point.longitude)


def _courier_summary(courier: CourierForRoute) -> CourierSummaryModel:
    position = courier.current_position
    return CourierSummaryModel(
        id=courier.id,
        name=courier.name,
        phone=courier.phone or "",
        current_latitude=position.latitude if position else None,
        current_longitude=position.longitude if position else None,
    )


def _point_model(point: DeliveryPoint, sequence_number: int) -> RoutePointModel:
    return RoutePointModel(
        id=point.id,
        sequence_number=sequence_number,
        kind="DROPOFF",
        status=point.status,
        address=point.address,
        latitude=point.position.latitude,
        longitude=point.position.longitude,
        customer_name=point.customer_name,
        estimated_arrival=point.estimated_arrival,
        priority=point.priority.value,
    )


def _waypoint_model(waypoint: Waypoint) -> RoutePointModel:
    return RoutePointModel(
        id=waypoint.id,
        sequence_number=waypoint.sequence_number,
        kind=waypoint.kind.value,
        status=waypoint.status,
        address=waypoint.address,
        latitude=waypoint.position.latitude,
        longitude=waypoint.position.longitude,
        customer_name=waypoint.customer_name,
        estimated_arrival=waypoint.estimated_arrival,
    )


def build_route_response(
    plan: RoutePlan,
    courier: CourierForRoute,
    route_id: Optional[str] = None,
) -> RoutePlanResponse:
    if plan.waypoints:
        points = [_waypoint_model(waypoint) for waypoint in plan.waypoints]
    else:
        points = [_point_model(point, idx) for idx, point in enumerate(plan.delivery_points, start=1)]
    return RoutePlanResponse(
        courier=_courier_summary(courier),
        zone_id=plan.zone_id,
        route_id=route_id,
        delivery_points=points,
        total_distance=plan.total_distance_km,
        total_duration=plan.total_duration_min,
        excluded=[
            ExcludedPointModel(
                id=item.point.id,
                reason=item.reason.value,
                latitude=item.point.position.latitude,
                longitude=item.point.position.longitude,
            )
            for item in plan.excluded
        ],
    )


def _export_plan(plan: RoutePlan) -> Path | None:
    try:
        storage = FileStorage()
        run_dir = storage.make_run_directory(prefix=f"route_{plan.courier_id}")
        storage.write_json(run_dir / "summary.json", route_plan_to_json(plan))
        storage.write_csv(run_dir / "stops.csv", route_plan_to_csv(plan))
        storage.write_json(run_dir / "route.geojson", route_plan_to_feature_collection(plan))
    except OSError as exc:
        logging.error(f"Failed to export route for courier '{plan.courier_id}': {exc}")
        return None
    return run_dir


def _persist_plan(plan: RoutePlan, on_date: date | None = None) -> Optional[str]:
    # Planned routes are returned even when the write-back fails.
    route_id = persist_route_plan(plan, on_date)
    _export_plan(plan)
    return route_id


def get_courier_route(courier_id: str, start_point: Optional[StartPoint] = None) -> RoutePlanResponse:
    """Current route of a courier over its active orders, rendered with waypoints."""

    courier = fetch_courier(courier_id)
    if courier is None:
        raise RecordNotFound(f"Courier '{courier_id}' does not exist.")

    orders = fetch_courier_orders(courier_id)
    if not orders:
        return build_route_response(
            RoutePlan(courier_id=courier.id, zone_id=courier.zone_id, delivery_points=[], total_distance_km=0.0, total_duration_min=0),
            courier,
        )

    planning_courier = resolve_start_position(courier, orders, _to_position(start_point))
    plan = plan_route_with_waypoint_details(
        planning_courier,
        orders,
        pickup_minutes=settings.pickup_duration_minutes,
        default_stop_minutes=settings.default_stop_duration_minutes,
    )
    return build_route_response(plan, courier)


def get_order_route(order_id: str) -> RoutePlanResponse:
    """Pickup to drop-off route for a single order with an assigned courier."""

    found = fetch_order(order_id)
    if found is None:
        raise RecordNotFound(f"Order '{order_id}' does not exist.")
    point, courier_id = found
    if not courier_id:
        raise RecordNotFound(f"Order '{order_id}' does not have a courier assigned.")
    courier = fetch_courier(courier_id)
    if courier is None:
        raise RecordNotFound(f"Courier '{courier_id}' does not exist.")

    plan = plan_order_route(
        point,
        pickup_fallback=_fallback_position(),
        speed_kmh=courier.speed_kmh(settings.default_average_speed_kmh),
        default_stop_minutes=settings.default_stop_duration_minutes,
        courier_id=courier.id,
    )
    return build_route_response(plan, courier)


def optimize_courier_route(payload: RouteOptimizationRequest) -> RoutePlanResponse:
    with _courier_lock(payload.courier_id):
        courier = fetch_courier(payload.courier_id)
        if courier is None:
            raise RecordNotFound(f"Courier '{payload.courier_id}' does not exist.")

        orders = fetch_orders_by_ids(payload.order_ids)
        if not orders:
            raise RecordNotFound("No valid orders provided.")
        missing = set(payload.order_ids) - {order.id for order in orders}
        if missing:
            logging.warning(f"Ignoring unknown or unroutable orders: {sorted(missing)}")

        planning_courier = resolve_start_position(courier, orders, _to_position(payload.start_point))
        if payload.include_waypoints:
            plan = plan_route_with_waypoint_details(
                planning_courier,
                orders,
                pickup_minutes=settings.pickup_duration_minutes,
                default_stop_minutes=settings.default_stop_duration_minutes,
            )
        else:
            plan = plan_route(planning_courier, orders, default_stop_minutes=settings.default_stop_duration_minutes)
        route_id = _persist_plan(plan) if payload.persist else None

    logging.info(
        f"Planned {len(plan.delivery_points)} deliveries for courier '{courier.id}' "
        f"({plan.total_distance_km} km, {plan.total_duration_min} min)"
    )
    return build_route_response(plan, courier, route_id)


def _zone_locator(use_zone_boundaries: bool) -> ZoneLocator:
    if not use_zone_boundaries:
        return NullZoneLocator()
    polygons = fetch_zone_polygons()
    if not polygons:
        return NullZoneLocator()
    return PolygonZoneLocator(polygons)


def assign_zone_deliveries(
    payload: AssignmentRequest,
    zone_locator: Optional[ZoneLocator] = None,
) -> AssignmentResponse:
    """Distribute plannable orders over available couriers and plan each courier's route."""

    orders = fetch_plannable_orders(payload.zone_id, payload.planning_date)
    couriers = fetch_available_couriers(payload.zone_id, payload.planning_date)
    if not couriers:
        logging.warning(f"No available couriers for zone '{payload.zone_id}'")

    result = assign_deliveries(
        couriers,
        orders,
        zone_locator=zone_locator or _zone_locator(payload.use_zone_boundaries),
    )

    couriers_by_id = {courier.id: courier for courier in couriers}
    routes: list[RoutePlanResponse] = []
    for courier_id, points in result.assignments.items():
        if not points:
            continue
        courier = couriers_by_id[courier_id]
        with _courier_lock(courier_id):
            plan = plan_route(
                resolve_start_position(courier, points),
                points,
                default_stop_minutes=settings.default_stop_duration_minutes,
            )
            route_id = _persist_plan(plan, payload.planning_date) if payload.persist else None
        routes.append(build_route_response(plan, courier, route_id))

    return AssignmentResponse(
        zone_id=payload.zone_id,
        routes=routes,
        unassigned=[_point_model(point, idx) for idx, point in enumerate(result.unassigned, start=1)],
    )


def cluster_pending_orders(zone_id: Optional[str] = None, radius_km: Optional[float] = None) -> ClusterResponse:
    """Group plannable orders into seed-based proximity clusters."""

    radius = radius_km or settings.default_cluster_radius_km
    orders = fetch_plannable_orders(zone_id)
    clusters = cluster_by_proximity(orders, radius, key=lambda point: point.position)

    models: list[ClusterModel] = []
    for cluster in clusters:
        center = centroid(point.position for point in cluster)
        models.append(
            ClusterModel(
                centroid_latitude=center.latitude,
                centroid_longitude=center.longitude,
                size=len(cluster),
                order_ids=[point.id for point in cluster],
            )
        )
    return ClusterResponse(zone_id=zone_id, radius_km=radius, clusters=models)
