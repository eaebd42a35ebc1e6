"""Domain models for orders and couriers taking part in route planning."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from ..errors import InvalidArgument


@dataclass(frozen=True, slots=True)
class GeoPosition:
    """Latitude/longitude pair in degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidArgument(f"latitude {self.latitude} is outside [-90, 90]")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidArgument(f"longitude {self.longitude} is outside [-180, 180]")

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]

    @property
    def is_high(self) -> bool:
        return self in (Priority.URGENT, Priority.HIGH)


_PRIORITY_RANKS = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


@dataclass(frozen=True, slots=True)
class DeliveryPoint:
    """An order's drop-off location plus the metadata the planner needs."""

    id: str
    position: GeoPosition
    address: str = ""
    priority: Priority = Priority.MEDIUM
    estimated_duration: Optional[int] = None
    status: Optional[str] = None
    customer_name: Optional[str] = None
    estimated_arrival: Optional[datetime] = None
    pickup_position: Optional[GeoPosition] = None
    pickup_address: Optional[str] = None

    def handling_minutes(self, default: int) -> int:
        return self.estimated_duration if self.estimated_duration is not None else default


@dataclass(slots=True)
class CourierForRoute:
    """Planning-time snapshot of a courier."""

    id: str
    name: str
    max_deliveries_per_day: int
    current_position: Optional[GeoPosition] = None
    zone_id: Optional[str] = None
    max_distance_km: Optional[float] = None
    average_speed_kmh: Optional[float] = None
    phone: Optional[str] = None

    def speed_kmh(self, default: float = 30.0) -> float:
        return self.average_speed_kmh or default

    def at(self, position: GeoPosition) -> "CourierForRoute":
        """Return a copy of this courier placed at ``position``."""

        return replace(self, current_position=position)
