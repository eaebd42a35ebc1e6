"""Serializers for route plan exports."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict

from ..routing.models import RoutePlan


def route_plan_to_json(plan: RoutePlan) -> dict:
    return {
        "courier_id": plan.courier_id,
        "zone_id": plan.zone_id,
        "total_distance_km": plan.total_distance_km,
        "total_duration_min": plan.total_duration_min,
        "delivery_count": len(plan.delivery_points),
        "stops": [asdict(stop) for stop in plan.stops],
        "excluded": [
            {"point_id": item.point.id, "reason": item.reason.value}
            for item in plan.excluded
        ],
    }


def route_plan_to_csv(plan: RoutePlan) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "courier_id",
        "sequence",
        "order_id",
        "priority",
        "latitude",
        "longitude",
        "distance_from_prev_km",
        "travel_min",
        "handling_min",
        "arrival_min",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for point, stop in zip(plan.delivery_points, plan.stops):
        writer.writerow(
            {
                "courier_id": plan.courier_id,
                "sequence": stop.sequence,
                "order_id": point.id,
                "priority": point.priority.value,
                "latitude": point.position.latitude,
                "longitude": point.position.longitude,
                "distance_from_prev_km": stop.distance_from_prev_km,
                "travel_min": stop.travel_min,
                "handling_min": stop.handling_min,
                "arrival_min": stop.arrival_min,
            }
        )
    return buffer.getvalue()
