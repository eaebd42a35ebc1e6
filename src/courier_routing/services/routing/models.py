"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from ...models.domain import DeliveryPoint, GeoPosition


class ExclusionReason(str, Enum):
    MAX_DISTANCE = "MAX_DISTANCE"
    CAPACITY = "CAPACITY"


class WaypointKind(str, Enum):
    CURRENT = "CURRENT"
    PICKUP = "PICKUP"
    DROPOFF = "DROPOFF"


@dataclass(slots=True)
class RouteStop:
    point_id: str
    sequence: int
    distance_from_prev_km: float
    travel_min: int
    handling_min: int
    arrival_min: int


@dataclass(slots=True)
class ExcludedPoint:
    point: DeliveryPoint
    reason: ExclusionReason


@dataclass(slots=True)
class Waypoint:
    id: str
    kind: WaypointKind
    position: GeoPosition
    address: str
    sequence_number: int
    status: Optional[str] = None
    customer_name: Optional[str] = None
    estimated_arrival: Optional[datetime] = None


@dataclass(slots=True)
class RoutePlan:
    courier_id: str
    delivery_points: List[DeliveryPoint]
    total_distance_km: float
    total_duration_min: int
    zone_id: Optional[str] = None
    stops: List[RouteStop] = field(default_factory=list)
    excluded: List[ExcludedPoint] = field(default_factory=list)
    waypoints: List[Waypoint] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.delivery_points


@dataclass(slots=True)
class AssignmentResult:
    assignments: Dict[str, List[DeliveryPoint]]
    unassigned: List[DeliveryPoint]

    def counts(self) -> dict[str, int]:
        return {courier_id: len(points) for courier_id, points in self.assignments.items()}
