import pytest

from src.courier_routing.errors import MissingCourierLocation
from src.courier_routing.models.domain import CourierForRoute, DeliveryPoint, GeoPosition, Priority
from src.courier_routing.services.geospatial import estimate_travel_time_minutes, haversine_km
from src.courier_routing.services.routing.models import ExclusionReason, WaypointKind
from src.courier_routing.services.routing.planner import (
    plan_order_route,
    plan_route,
    plan_route_with_waypoint_details,
)

START = GeoPosition(41.0082, 28.9784)
KM_LAT = 1 / 111.195


def _north(km: float, origin: GeoPosition = START) -> GeoPosition:
    return GeoPosition(origin.latitude + km * KM_LAT, origin.longitude)


def _point(pid: str, position: GeoPosition, priority: Priority = Priority.MEDIUM, **kwargs) -> DeliveryPoint:
    return DeliveryPoint(id=pid, position=position, address=f"Address {pid}", priority=priority, **kwargs)


def _courier(**overrides) -> CourierForRoute:
    values = dict(id="K1", name="Courier One", max_deliveries_per_day=10, current_position=START, zone_id="Z1")
    values.update(overrides)
    return CourierForRoute(**values)


def test_urgent_point_precedes_nearby_low_point():
    far_urgent = _point("urgent", _north(20), Priority.URGENT)
    near_low = _point("low", _north(0.1), Priority.LOW)

    plan = plan_route(_courier(), [near_low, far_urgent])

    assert [p.id for p in plan.delivery_points] == ["urgent", "low"]


def test_high_priority_tier_keeps_priority_order_not_proximity():
    high_near = _point("high", _north(1), Priority.HIGH)
    urgent_far = _point("urgent", _north(6), Priority.URGENT)

    plan = plan_route(_courier(), [high_near, urgent_far])

    assert [p.id for p in plan.delivery_points] == ["urgent", "high"]


def test_capacity_bounds_route_length():
    points = [_point(f"P{i}", _north(0.5 * (i + 1))) for i in range(5)]

    plan = plan_route(_courier(max_deliveries_per_day=2), points)

    assert len(plan.delivery_points) == 2
    assert [p.id for p in plan.delivery_points] == ["P0", "P1"]
    assert {item.point.id for item in plan.excluded} == {"P2", "P3", "P4"}
    assert all(item.reason is ExclusionReason.CAPACITY for item in plan.excluded)


def test_capacity_reached_during_high_priority_phase():
    points = [
        _point("U1", _north(3), Priority.URGENT),
        _point("H1", _north(4), Priority.HIGH),
        _point("M1", _north(0.2)),
    ]

    plan = plan_route(_courier(max_deliveries_per_day=1), points)

    assert [p.id for p in plan.delivery_points] == ["U1"]
    assert {item.point.id for item in plan.excluded} == {"H1", "M1"}


def test_max_distance_excludes_far_point_and_its_leg():
    near = _point("near", _north(0.5))
    far = _point("far", _north(10))

    plan = plan_route(_courier(max_distance_km=1.0), [far, near])

    assert [p.id for p in plan.delivery_points] == ["near"]
    assert plan.total_distance_km == round(haversine_km(START, near.position), 2)
    assert plan.total_duration_min == estimate_travel_time_minutes(START, near.position) + 10
    assert [(item.point.id, item.reason) for item in plan.excluded] == [("far", ExclusionReason.MAX_DISTANCE)]


def test_out_of_range_high_priority_point_is_skipped_not_fatal():
    far_urgent = _point("urgent", _north(10), Priority.URGENT)
    near_high = _point("high", _north(0.5), Priority.HIGH)

    plan = plan_route(_courier(max_distance_km=1.0), [far_urgent, near_high])

    assert [p.id for p in plan.delivery_points] == ["high"]
    assert plan.excluded[0].point.id == "urgent"
    assert plan.excluded[0].reason is ExclusionReason.MAX_DISTANCE


def test_empty_input_returns_empty_plan():
    plan = plan_route(_courier(), [])

    assert plan.delivery_points == []
    assert plan.total_distance_km == 0
    assert plan.total_duration_min == 0
    assert plan.excluded == []


def test_missing_courier_location_raises():
    with pytest.raises(MissingCourierLocation):
        plan_route(_courier(current_position=None), [_point("P1", _north(1))])


def test_nearest_neighbor_visits_points_by_increasing_distance():
    two = _point("2km", _north(2))
    five = _point("5km", _north(5))
    eight = _point("8km", _north(8))

    plan = plan_route(_courier(), [eight, two, five])

    assert [p.id for p in plan.delivery_points] == ["2km", "5km", "8km"]
    legs = [
        haversine_km(START, two.position),
        haversine_km(two.position, five.position),
        haversine_km(five.position, eight.position),
    ]
    assert plan.total_distance_km == round(sum(legs), 2)
    assert plan.total_distance_km == pytest.approx(8.0, abs=0.01)
    expected_duration = (
        estimate_travel_time_minutes(START, two.position)
        + estimate_travel_time_minutes(two.position, five.position)
        + estimate_travel_time_minutes(five.position, eight.position)
        + 3 * 10
    )
    assert plan.total_duration_min == expected_duration
    assert plan.zone_id == "Z1"
    assert plan.courier_id == "K1"


def test_stops_record_sequence_and_handling():
    first = _point("A", _north(0.5), estimated_duration=25)
    second = _point("B", _north(1.0))

    plan = plan_route(_courier(), [second, first])

    assert [(stop.point_id, stop.sequence) for stop in plan.stops] == [("A", 1), ("B", 2)]
    assert plan.stops[0].handling_min == 25
    assert plan.stops[1].handling_min == 10
    assert plan.stops[0].arrival_min == plan.stops[0].travel_min
    assert plan.stops[1].arrival_min == plan.stops[0].travel_min + 25 + plan.stops[1].travel_min


def test_average_speed_changes_duration_not_order():
    points = [_point("A", _north(3)), _point("B", _north(6))]

    slow = plan_route(_courier(average_speed_kmh=15), points)
    fast = plan_route(_courier(average_speed_kmh=60), points)

    assert [p.id for p in slow.delivery_points] == [p.id for p in fast.delivery_points]
    assert slow.total_duration_min > fast.total_duration_min


def test_planner_does_not_mutate_input():
    points = [_point("A", _north(6)), _point("B", _north(3), Priority.URGENT)]
    snapshot = list(points)

    plan_route(_courier(), points)

    assert points == snapshot


def test_waypoint_details_insert_pickups_before_dropoffs():
    pickup = _north(0.4)
    order = _point("O1", _north(0.4, pickup), pickup_position=pickup, pickup_address="Business Street 1")

    plan = plan_route_with_waypoint_details(_courier(), [order])

    assert [(wp.kind, wp.sequence_number) for wp in plan.waypoints] == [
        (WaypointKind.CURRENT, 1),
        (WaypointKind.PICKUP, 2),
        (WaypointKind.DROPOFF, 3),
    ]
    assert plan.waypoints[1].id == "pickup-O1"
    assert plan.waypoints[1].address == "Business Street 1"
    assert plan.waypoints[2].id == "O1"
    assert plan.total_distance_km == round(haversine_km(START, pickup) + haversine_km(pickup, order.position), 2)
    # two 400 m legs of one minute each, 5 minutes pickup, 10 minutes handover
    assert plan.total_duration_min == 1 + 5 + 1 + 10


def test_waypoint_details_keep_planner_sequence():
    points = [
        _point("low", _north(0.2), Priority.LOW),
        _point("urgent", _north(4), Priority.URGENT),
        _point("mid", _north(5)),
    ]

    plain = plan_route(_courier(), points)
    detailed = plan_route_with_waypoint_details(_courier(), points)

    assert [p.id for p in detailed.delivery_points] == [p.id for p in plain.delivery_points]
    dropoffs = [wp.id for wp in detailed.waypoints if wp.kind is WaypointKind.DROPOFF]
    assert dropoffs == [p.id for p in plain.delivery_points]
    # without pickup locations the rendered path is the planned path
    assert detailed.total_distance_km == plain.total_distance_km
    assert detailed.total_duration_min == plain.total_duration_min


def test_plan_order_route_falls_back_to_given_pickup():
    order = _point("O9", _north(0.4), status="READY", customer_name="Ayse")

    plan = plan_order_route(order, pickup_fallback=START, courier_id="K1")

    assert [wp.id for wp in plan.waypoints] == ["pickup", "O9"]
    assert plan.waypoints[0].position == START
    assert plan.waypoints[1].customer_name == "Ayse"
    assert plan.total_duration_min == 1 + 10
    assert plan.courier_id == "K1"


def test_waypoint_details_stops_account_for_pickup_detours():
    # pickup lies past the drop-off, so the detour dominates the route
    dropoff = _north(2)
    pickup = _north(5)
    points = [
        _point("O1", dropoff, pickup_position=pickup),
        _point("O2", _north(3)),
    ]

    plan = plan_route_with_waypoint_details(_courier(), points)

    assert [stop.point_id for stop in plan.stops] == ["O1", "O2"]
    assert sum(stop.distance_from_prev_km for stop in plan.stops) == pytest.approx(plan.total_distance_km, abs=0.01)
    assert plan.stops[0].distance_from_prev_km == pytest.approx(8.0, abs=0.01)
    assert plan.stops[0].travel_min == (
        estimate_travel_time_minutes(START, pickup) + 5 + estimate_travel_time_minutes(pickup, dropoff)
    )
    last = plan.stops[-1]
    assert last.arrival_min + last.handling_min == plan.total_duration_min
    assert sum(stop.travel_min + stop.handling_min for stop in plan.stops) == plan.total_duration_min


def test_equal_priority_high_tier_points_keep_input_order():
    far = _point("far", _north(8), Priority.URGENT)
    near = _point("near", _north(1), Priority.URGENT)

    plan = plan_route(_courier(), [far, near])

    assert [p.id for p in plan.delivery_points] == ["far", "near"]


def test_skipped_high_priority_point_is_not_retried_once_in_range():
    # 8 km away at the start, only 4 km away after visiting the HIGH point
    unreachable = _point("urgent", _north(8), Priority.URGENT)
    stepping_stone = _point("high", _north(4), Priority.HIGH)

    plan = plan_route(_courier(max_distance_km=5.0), [unreachable, stepping_stone])

    assert [p.id for p in plan.delivery_points] == ["high"]
    assert [(item.point.id, item.reason) for item in plan.excluded] == [("urgent", ExclusionReason.MAX_DISTANCE)]


@pytest.mark.parametrize("order, expected", [(["a", "b"], ["a", "b"]), (["b", "a"], ["b", "a"])])
def test_nearest_neighbor_tie_goes_to_first_candidate(order, expected):
    spot = _north(2)
    points = {"a": _point("a", spot), "b": _point("b", spot)}

    plan = plan_route(_courier(), [points[pid] for pid in order])

    assert [p.id for p in plan.delivery_points] == expected
