from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.courier_routing.main import create_app
from src.courier_routing.models.domain import CourierForRoute, DeliveryPoint, GeoPosition, Priority

START = GeoPosition(41.0082, 28.9784)


def _order(oid: str, lat: float, lon: float, priority: Priority = Priority.MEDIUM) -> DeliveryPoint:
    return DeliveryPoint(
        id=oid,
        position=GeoPosition(lat, lon),
        address=f"Address {oid}",
        priority=priority,
        status="READY",
        customer_name=f"Customer {oid}",
    )


ORDERS = [
    _order("O1", 41.03, 28.98),
    _order("O2", 41.01, 28.98),
    _order("O3", 41.06, 28.98, Priority.HIGH),
]


def _courier(cid: str) -> CourierForRoute:
    return CourierForRoute(id=cid, name=f"Courier {cid}", max_deliveries_per_day=10, current_position=START)


@pytest.fixture
def api_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    app = create_app()
    client = TestClient(app)

    from src.courier_routing.persistence.filesystem import FileStorage
    from src.courier_routing.services.routing import service as routing_service

    monkeypatch.setattr(routing_service, "FileStorage", lambda: FileStorage(root=tmp_path))
    monkeypatch.setattr(routing_service, "fetch_courier", lambda cid: _courier(cid) if cid == "K1" else None)
    monkeypatch.setattr(routing_service, "fetch_courier_orders", lambda cid: list(ORDERS))
    monkeypatch.setattr(routing_service, "fetch_orders_by_ids", lambda ids: [o for o in ORDERS if o.id in ids])
    monkeypatch.setattr(routing_service, "fetch_plannable_orders", lambda zone_id, on_date=None: list(ORDERS))
    monkeypatch.setattr(routing_service, "fetch_available_couriers", lambda zone_id, on_date=None: [_courier("K1")])
    monkeypatch.setattr(routing_service, "fetch_zone_polygons", lambda: {})
    monkeypatch.setattr(routing_service, "persist_route_plan", lambda plan, on_date=None: "R-1")

    return client


def test_health(api_client: TestClient):
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_courier_route_uses_camel_case_keys(api_client: TestClient):
    response = api_client.get("/api/routes/courier/K1")
    assert response.status_code == 200, response.text
    data = response.json()

    assert {"courier", "deliveryPoints", "totalDistance", "totalDuration"} <= set(data)
    first = data["deliveryPoints"][0]
    assert first["id"] == "courier-location"
    assert first["sequenceNumber"] == 1
    dropoffs = [point for point in data["deliveryPoints"] if point["kind"] == "DROPOFF"]
    assert [point["id"] for point in dropoffs] == ["O3", "O1", "O2"]
    assert dropoffs[0]["customerName"] == "Customer O3"


def test_courier_route_unknown_courier_is_404(api_client: TestClient):
    response = api_client.get("/api/routes/courier/missing")
    assert response.status_code == 404


def test_courier_route_requires_both_start_coordinates(api_client: TestClient):
    response = api_client.get("/api/routes/courier/K1", params={"start_lat": 41.0})
    assert response.status_code == 400


def test_optimize_endpoint_accepts_camel_case_payload(api_client: TestClient, tmp_path: Path):
    response = api_client.post(
        "/api/routes/optimize",
        json={"courierId": "K1", "orderIds": ["O1", "O2", "O3"], "startPoint": {"latitude": 41.0, "longitude": 28.98}},
    )
    assert response.status_code == 200, response.text
    data = response.json()

    assert data["routeId"] == "R-1"
    assert [point["id"] for point in data["deliveryPoints"]] == ["O3", "O1", "O2"]
    assert data["totalDuration"] > 0
    assert any((tmp_path / "outputs").iterdir())


def test_optimize_endpoint_rejects_empty_order_list(api_client: TestClient):
    response = api_client.post("/api/routes/optimize", json={"courierId": "K1", "orderIds": []})
    assert response.status_code == 422


def test_assign_endpoint_returns_routes(api_client: TestClient):
    response = api_client.post("/api/routes/assign", json={"zoneId": "Z1"})
    assert response.status_code == 200, response.text
    data = response.json()

    assert len(data["routes"]) == 1
    assert data["routes"][0]["courier"]["id"] == "K1"
    assert data["unassigned"] == []


def test_clusters_endpoint(api_client: TestClient):
    response = api_client.get("/api/routes/clusters", params={"radius_km": 50})
    assert response.status_code == 200, response.text
    data = response.json()

    assert data["radiusKm"] == 50
    assert data["clusters"][0]["size"] == 3


def test_server_side_validation_error_is_500(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from src.courier_routing.api.routes import routes as routes_module
    from src.courier_routing.schemas.routing import RoutePlanResponse

    def broken_route(courier_id, start_point=None):
        return RoutePlanResponse.model_validate({"deliveryPoints": []})

    monkeypatch.setattr(routes_module, "get_courier_route", broken_route)

    response = api_client.get("/api/routes/courier/K1")
    assert response.status_code == 500


def test_invalid_planning_input_is_400(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from src.courier_routing.api.routes import routes as routes_module
    from src.courier_routing.errors import MissingCourierLocation

    def no_location(courier_id, start_point=None):
        raise MissingCourierLocation(courier_id)

    monkeypatch.setattr(routes_module, "get_courier_route", no_location)

    response = api_client.get("/api/routes/courier/K1")
    assert response.status_code == 400
    assert "K1" in response.json()["detail"]
