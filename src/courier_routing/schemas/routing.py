"""Routing request/response schemas.

Responses use camelCase keys, the shape the map and list views consume.
"""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartPoint(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RouteOptimizationRequest(CamelModel):
    courier_id: str
    order_ids: List[str] = Field(..., min_length=1)
    start_point: Optional[StartPoint] = None
    persist: bool = True
    include_waypoints: bool = Field(
        default=False,
        description="Render pickup and courier-location waypoints in the returned route.",
    )


class AssignmentRequest(CamelModel):
    zone_id: Optional[str] = None
    planning_date: Optional[dt.date] = Field(default=None, alias="date")
    persist: bool = False
    use_zone_boundaries: bool = Field(
        default=True,
        description="Group orders by stored zone boundaries; otherwise all orders form one unzoned group.",
    )


class CourierSummaryModel(CamelModel):
    id: str
    name: str
    phone: str = ""
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None


class RoutePointModel(CamelModel):
    id: str
    sequence_number: int
    kind: str
    status: Optional[str] = None
    address: str = ""
    latitude: float
    longitude: float
    customer_name: Optional[str] = None
    estimated_arrival: Optional[dt.datetime] = None
    priority: Optional[str] = None


class ExcludedPointModel(CamelModel):
    id: str
    reason: str
    latitude: float
    longitude: float


class RoutePlanResponse(CamelModel):
    courier: CourierSummaryModel
    zone_id: Optional[str] = None
    route_id: Optional[str] = None
    delivery_points: List[RoutePointModel]
    total_distance: float
    total_duration: int
    excluded: List[ExcludedPointModel] = Field(default_factory=list)


class AssignmentResponse(CamelModel):
    zone_id: Optional[str] = None
    routes: List[RoutePlanResponse]
    unassigned: List[RoutePointModel]


class ClusterModel(CamelModel):
    centroid_latitude: float
    centroid_longitude: float
    size: int
    order_ids: List[str]


class ClusterResponse(CamelModel):
    zone_id: Optional[str] = None
    radius_km: float
    clusters: List[ClusterModel]
