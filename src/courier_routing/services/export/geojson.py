"""GeoJSON export of planned routes for map overlays."""

from __future__ import annotations

from typing import Any, Dict, List

from ..routing.models import RoutePlan


def route_plan_to_feature_collection(plan: RoutePlan) -> Dict[str, Any]:
    """Convert a route plan into a GeoJSON FeatureCollection.

    The path follows the rendered waypoints when the plan carries them and the
    drop-off order otherwise. GeoJSON uses [lon, lat] ordering.
    """
    if plan.waypoints:
        stops = [
            (wp.position, {"id": wp.id, "kind": wp.kind.value, "sequence_number": wp.sequence_number, "address": wp.address})
            for wp in plan.waypoints
        ]
    else:
        stops = [
            (point.position, {"id": point.id, "kind": "DROPOFF", "sequence_number": idx, "address": point.address})
            for idx, point in enumerate(plan.delivery_points, start=1)
        ]

    features: List[Dict[str, Any]] = []
    if len(stops) >= 2:
        features.append(
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[position.longitude, position.latitude] for position, _ in stops],
                },
                "properties": {
                    "courier_id": plan.courier_id,
                    "zone_id": plan.zone_id,
                    "total_distance_km": plan.total_distance_km,
                    "total_duration_min": plan.total_duration_min,
                },
            }
        )
    for position, properties in stops:
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [position.longitude, position.latitude]},
                "properties": properties,
            }
        )
    return {"type": "FeatureCollection", "features": features}
