"""Database persistence for orders, couriers and planned routes."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Optional, Sequence

from ..config import settings
from ..db.supabase import get_supabase_client
from ..errors import InvalidArgument
from ..models.domain import CourierForRoute, DeliveryPoint, GeoPosition, Priority
from ..services.routing.models import RoutePlan

ORDER_COLUMNS = (
    "id, latitude, longitude, address, priority, estimated_duration, status, estimated_delivery, courier_id, "
    "business:businesses{join}(zone_id, latitude, longitude, address), "
    "customer:customers(name)"
)
COURIER_COLUMNS = (
    "id, phone, current_latitude, current_longitude, zone_id, max_deliveries_per_day, max_distance, average_speed, "
    "user:users(name)"
)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logging.warning(f"Ignoring unparseable timestamp '{value}'")
        return None


def _optional_position(lat: Any, lon: Any) -> Optional[GeoPosition]:
    if lat is None or lon is None:
        return None
    return GeoPosition(latitude=float(lat), longitude=float(lon))


def delivery_point_from_row(row: dict[str, Any]) -> Optional[DeliveryPoint]:
    """Convert an order row (with embedded business/customer) into a DeliveryPoint.

    Returns None for rows without usable drop-off coordinates.
    """
    try:
        position = _optional_position(row.get("latitude"), row.get("longitude"))
    except InvalidArgument as exc:
        logging.warning(f"Order {row.get('id')} has invalid coordinates: {exc}")
        return None
    if position is None:
        return None

    business = row.get("business") or {}
    customer = row.get("customer") or {}
    try:
        pickup = _optional_position(business.get("latitude"), business.get("longitude"))
    except InvalidArgument:
        pickup = None

    raw_priority = (row.get("priority") or Priority.MEDIUM.value).upper()
    try:
        priority = Priority(raw_priority)
    except ValueError:
        logging.warning(f"Order {row.get('id')} has unknown priority '{raw_priority}', using MEDIUM")
        priority = Priority.MEDIUM

    duration = row.get("estimated_duration")
    return DeliveryPoint(
        id=str(row["id"]),
        position=position,
        address=row.get("address") or "",
        priority=priority,
        estimated_duration=int(duration) if duration is not None else None,
        status=row.get("status"),
        customer_name=customer.get("name"),
        estimated_arrival=_parse_datetime(row.get("estimated_delivery")),
        pickup_position=pickup,
        pickup_address=business.get("address"),
    )


def courier_from_row(row: dict[str, Any]) -> CourierForRoute:
    user = row.get("user") or {}
    try:
        position = _optional_position(row.get("current_latitude"), row.get("current_longitude"))
    except InvalidArgument as exc:
        logging.warning(f"Courier {row.get('id')} reports an invalid location: {exc}")
        position = None
    return CourierForRoute(
        id=str(row["id"]),
        name=user.get("name") or "",
        max_deliveries_per_day=int(row.get("max_deliveries_per_day") or 0),
        current_position=position,
        zone_id=row.get("zone_id") or None,
        max_distance_km=row.get("max_distance") or None,
        average_speed_kmh=row.get("average_speed") or None,
        phone=row.get("phone"),
    )


def _points_from_rows(rows: Sequence[dict[str, Any]]) -> list[DeliveryPoint]:
    points = [delivery_point_from_row(row) for row in rows]
    return [point for point in points if point is not None]


def fetch_plannable_orders(zone_id: str | None = None, on_date: date | None = None) -> list[DeliveryPoint]:
    """Orders ready to be routed, optionally limited to one zone.

    ``on_date`` is accepted for interface symmetry; readiness is decided by status alone.
    """
    supabase = get_supabase_client()
    if not supabase:
        logging.warning("Database not configured - no orders available for planning")
        return []

    try:
        columns = ORDER_COLUMNS.format(join="!inner" if zone_id else "")
        query = (
            supabase.table("orders")
            .select(columns)
            .in_("status", list(settings.plannable_order_statuses))
            .not_.is_("latitude", "null")
            .not_.is_("longitude", "null")
        )
        if zone_id:
            query = query.eq("business.zone_id", zone_id)
        response = query.execute()
        points = _points_from_rows(response.data or [])
        logging.info(f"Retrieved {len(points)} plannable orders (zone={zone_id}, date={on_date})")
        return points
    except Exception as e:
        logging.warning(f"Failed to retrieve plannable orders: {e}")
        return []


def fetch_available_couriers(zone_id: str | None = None, on_date: date | None = None) -> list[CourierForRoute]:
    """Active couriers with an AVAILABLE availability window overlapping ``on_date``."""

    supabase = get_supabase_client()
    if not supabase:
        logging.warning("Database not configured - no couriers available for planning")
        return []

    day = on_date or date.today()
    start_of_day = datetime.combine(day, time.min).isoformat()
    end_of_day = datetime.combine(day, time.max).isoformat()

    try:
        query = (
            supabase.table("couriers")
            .select(f"{COURIER_COLUMNS}, availability:courier_availability!inner(status, start_time, end_time)")
            .eq("status", "ACTIVE")
            .eq("availability.status", "AVAILABLE")
            .lte("availability.start_time", end_of_day)
            .gte("availability.end_time", start_of_day)
        )
        if zone_id:
            query = query.eq("zone_id", zone_id)
        response = query.execute()
        couriers = [courier_from_row(row) for row in response.data or []]
        logging.info(f"Retrieved {len(couriers)} available couriers (zone={zone_id}, date={day})")
        return couriers
    except Exception as e:
        logging.warning(f"Failed to retrieve available couriers: {e}")
        return []


def fetch_courier(courier_id: str) -> CourierForRoute | None:
    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        response = supabase.table("couriers").select(COURIER_COLUMNS).eq("id", courier_id).limit(1).execute()
    except Exception as e:
        logging.warning(f"Failed to retrieve courier {courier_id}: {e}")
        return None
    if not response.data:
        return None
    return courier_from_row(response.data[0])


def fetch_courier_orders(courier_id: str) -> list[DeliveryPoint]:
    """Orders currently assigned to a courier and not yet delivered, oldest first."""

    supabase = get_supabase_client()
    if not supabase:
        return []

    try:
        response = (
            supabase.table("orders")
            .select(ORDER_COLUMNS.format(join=""))
            .eq("courier_id", courier_id)
            .in_("status", list(settings.active_order_statuses))
            .order("created_at")
            .execute()
        )
        return _points_from_rows(response.data or [])
    except Exception as e:
        logging.warning(f"Failed to retrieve orders for courier {courier_id}: {e}")
        return []


def fetch_orders_by_ids(order_ids: Sequence[str]) -> list[DeliveryPoint]:
    supabase = get_supabase_client()
    if not supabase or not order_ids:
        return []

    try:
        response = supabase.table("orders").select(ORDER_COLUMNS.format(join="")).in_("id", list(order_ids)).execute()
        return _points_from_rows(response.data or [])
    except Exception as e:
        logging.warning(f"Failed to retrieve orders {list(order_ids)}: {e}")
        return []


def fetch_order(order_id: str) -> tuple[DeliveryPoint, str | None] | None:
    """Return the order as a delivery point together with its assigned courier id."""

    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        response = supabase.table("orders").select(ORDER_COLUMNS.format(join="")).eq("id", order_id).limit(1).execute()
    except Exception as e:
        logging.warning(f"Failed to retrieve order {order_id}: {e}")
        return None
    if not response.data:
        return None
    row = response.data[0]
    point = delivery_point_from_row(row)
    if point is None:
        return None
    return point, row.get("courier_id")


def fetch_zone_polygons() -> dict[str, list[tuple[float, float]]]:
    """Zone boundaries keyed by zone id, as (lat, lon) rings stored in zone metadata."""

    supabase = get_supabase_client()
    if not supabase:
        return {}

    try:
        response = supabase.table("zones").select("id, metadata").execute()
    except Exception as e:
        logging.warning(f"Failed to retrieve zone boundaries: {e}")
        return {}

    polygons: dict[str, list[tuple[float, float]]] = {}
    for zone in response.data or []:
        metadata = zone.get("metadata") if isinstance(zone.get("metadata"), dict) else {}
        coordinates = metadata.get("coordinates") or []
        if len(coordinates) >= 3:
            polygons[str(zone["id"])] = [(float(lat), float(lon)) for lat, lon in coordinates]
    return polygons


def persist_route_plan(plan: RoutePlan, on_date: date | None = None) -> str | None:
    """Write a route summary row and the per-order sequence assignments.

    Returns:
        The id of the created route, or None when the database is not
        configured, the plan is empty or the route row could not be written.
        Orders whose update fails are logged and skipped; the route id is
        still returned because the route row exists.
    """
    supabase = get_supabase_client()
    if not supabase:
        logging.warning("Supabase not configured - route plan will not be persisted")
        return None
    if plan.is_empty:
        logging.info(f"Route plan for courier '{plan.courier_id}' is empty - nothing to persist")
        return None

    start = plan.delivery_points[0].position
    end = plan.delivery_points[-1].position
    try:
        response = supabase.table("delivery_routes").insert(
            {
                "courier_id": plan.courier_id,
                "zone_id": plan.zone_id,
                "start_latitude": start.latitude,
                "start_longitude": start.longitude,
                "end_latitude": end.latitude,
                "end_longitude": end.longitude,
                "total_distance": plan.total_distance_km,
                "total_duration": plan.total_duration_min,
                "date": (on_date or date.today()).isoformat(),
            }
        ).execute()
        route_id = str(response.data[0]["id"])
    except Exception as e:
        logging.error(f"Failed to persist route plan for courier '{plan.courier_id}': {e}")
        return None

    failed: list[str] = []
    for stop in plan.stops:
        try:
            supabase.table("orders").update(
                {
                    "courier_id": plan.courier_id,
                    "sequence_number": stop.sequence,
                    "estimated_distance": stop.distance_from_prev_km,
                    "estimated_duration": stop.handling_min,
                }
            ).eq("id", stop.point_id).execute()
        except Exception as e:
            logging.error(f"Failed to write sequence {stop.sequence} of route {route_id} to order {stop.point_id}: {e}")
            failed.append(stop.point_id)

    if failed:
        logging.warning(f"Route {route_id} persisted, but {len(failed)} orders were not updated: {failed}")
    else:
        logging.info(f"Persisted route {route_id} with {len(plan.stops)} stops for courier '{plan.courier_id}'")
    return route_id
