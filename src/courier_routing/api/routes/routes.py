"""Routing endpoints."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import ValidationError

from ...errors import RecordNotFound
from ...schemas.routing import (
    AssignmentRequest,
    AssignmentResponse,
    ClusterResponse,
    RouteOptimizationRequest,
    RoutePlanResponse,
    StartPoint,
)
from ...services.routing.service import (
    assign_zone_deliveries,
    cluster_pending_orders,
    get_courier_route,
    get_order_route,
    optimize_courier_route,
)

router = APIRouter(prefix="/routes", tags=["routes"])

T = TypeVar("T")


def _run(action: str, call: Callable[[], T]) -> T:
    try:
        return call()
    except RecordNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        # models built server-side failed to validate; not the caller's input
        logging.exception(f"Error {action}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed {action}: invalid response data",
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error {action}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed {action}: {str(exc)}",
        ) from exc


@router.get("/courier/{courier_id}", response_model=RoutePlanResponse, status_code=status.HTTP_200_OK)
def courier_route(
    courier_id: str,
    start_lat: float | None = Query(default=None, ge=-90, le=90, description="Override start latitude"),
    start_lon: float | None = Query(default=None, ge=-180, le=180, description="Override start longitude"),
) -> RoutePlanResponse:
    """Current route of a courier, with pickup and courier-location waypoints."""
    if (start_lat is None) != (start_lon is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_lat and start_lon must be provided together",
        )
    start = StartPoint(latitude=start_lat, longitude=start_lon) if start_lat is not None else None
    return _run("fetching courier route", lambda: get_courier_route(courier_id, start))


@router.get("/order/{order_id}", response_model=RoutePlanResponse, status_code=status.HTTP_200_OK)
def order_route(order_id: str) -> RoutePlanResponse:
    return _run("fetching order route", lambda: get_order_route(order_id))


@router.post("/optimize", response_model=RoutePlanResponse, status_code=status.HTTP_200_OK)
def optimize(payload: RouteOptimizationRequest) -> RoutePlanResponse:
    return _run("optimizing route", lambda: optimize_courier_route(payload))


@router.post("/assign", response_model=AssignmentResponse, status_code=status.HTTP_200_OK)
def assign(payload: AssignmentRequest) -> AssignmentResponse:
    """Assign plannable orders to available couriers and plan their routes."""
    return _run("assigning deliveries", lambda: assign_zone_deliveries(payload))


@router.get("/clusters", response_model=ClusterResponse, status_code=status.HTTP_200_OK)
def clusters(
    zone_id: str | None = Query(default=None, description="Filter orders by zone ID"),
    radius_km: float | None = Query(default=None, gt=0, description="Cluster radius around each seed order"),
) -> ClusterResponse:
    return _run("clustering orders", lambda: cluster_pending_orders(zone_id, radius_km))
