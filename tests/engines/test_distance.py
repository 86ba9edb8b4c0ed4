"""
Tests for the distance engine.

Covers:
- haversine_km: known city pair, zero distance, symmetry, input shapes
- Coordinate validation (range, type, finiteness)
- calculate_journey_cost and machine_visit_cost rounding and guards
- coordinates_differ threshold
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from expense_engines.distance import (
    calculate_journey_cost,
    coordinates_differ,
    haversine_estimate,
    haversine_km,
    machine_visit_cost,
)
from expense_kernel.domain.values import Coordinate, DistanceSource
from expense_kernel.exceptions import (
    InvalidAmountError,
    InvalidCoordinateError,
    InvalidDistanceError,
    MissingRateError,
)

MUMBAI = {"latitude": 19.0760, "longitude": 72.8777}
PUNE = {"latitude": 18.5204, "longitude": 73.8567}

latitudes = st.floats(min_value=-90, max_value=90, allow_nan=False)
longitudes = st.floats(min_value=-180, max_value=180, allow_nan=False)


class TestHaversine:
    def test_mumbai_to_pune(self):
        distance = haversine_km(MUMBAI, PUNE)
        assert Decimal("119") < distance < Decimal("121")
        assert distance == distance.quantize(Decimal("0.01"))

    def test_same_point_is_zero(self):
        assert haversine_km(MUMBAI, MUMBAI) == Decimal("0.00")

    def test_accepts_pairs_and_coordinates(self):
        as_pair = haversine_km((19.0760, 72.8777), (18.5204, 73.8567))
        as_value = haversine_km(Coordinate(19.0760, 72.8777), Coordinate(18.5204, 73.8567))
        assert as_pair == as_value == haversine_km(MUMBAI, PUNE)

    def test_estimate_has_no_duration(self):
        estimate = haversine_estimate(MUMBAI, PUNE)
        assert estimate.source is DistanceSource.HAVERSINE
        assert estimate.duration_min is None
        assert estimate.error is None
        assert not estimate.is_fallback

    def test_estimate_carries_fallback_error(self):
        estimate = haversine_estimate(MUMBAI, PUNE, error="Google Maps API unavailable: x")
        assert estimate.is_fallback

    @given(latitudes, longitudes, latitudes, longitudes)
    @settings(max_examples=50)
    def test_symmetric_and_non_negative(self, lat1, lng1, lat2, lng2):
        a, b = (lat1, lng1), (lat2, lng2)
        forward = haversine_km(a, b)
        assert forward >= 0
        assert forward == haversine_km(b, a)


class TestCoordinateValidation:
    @pytest.mark.parametrize(
        "point",
        [
            {"latitude": 91, "longitude": 0},
            {"latitude": -90.01, "longitude": 0},
            {"latitude": 0, "longitude": 180.5},
            {"latitude": "19.07", "longitude": 72.8},
            {"latitude": True, "longitude": 72.8},
            {"latitude": float("nan"), "longitude": 0},
            {"latitude": 19.07},
            None,
        ],
    )
    def test_rejects_invalid_points(self, point):
        with pytest.raises(InvalidCoordinateError):
            haversine_km(point, PUNE)

    def test_boundaries_are_valid(self):
        assert haversine_km((90, 180), (-90, -180)) > 0

    def test_query_string(self):
        assert Coordinate(19.076, 72.8777).as_query() == "19.076,72.8777"


class TestJourneyCost:
    def test_scenario_manual_distance(self):
        assert calculate_journey_cost(Decimal("148.3"), 8) == Decimal("1186.40")

    def test_rounds_half_up(self):
        assert calculate_journey_cost(Decimal("1.005"), 1) == Decimal("1.01")

    def test_float_distance(self):
        assert calculate_journey_cost(148.3, Decimal("8")) == Decimal("1186.40")

    @pytest.mark.parametrize("rate", [0, -1, None, "abc"])
    def test_rate_must_be_positive(self, rate):
        with pytest.raises(MissingRateError):
            calculate_journey_cost(10, rate)

    def test_negative_distance(self):
        with pytest.raises(InvalidDistanceError):
            calculate_journey_cost(-1, 8)


class TestMachineVisitCost:
    def test_per_machine_charge(self):
        assert machine_visit_cost(3, Decimal("100")) == Decimal("300.00")

    @pytest.mark.parametrize("machines", [None, 0])
    def test_no_machines(self, machines):
        assert machine_visit_cost(machines, 100) == Decimal("0")

    def test_negative_cost(self):
        with pytest.raises(InvalidAmountError):
            machine_visit_cost(2, -5)


class TestCoordinatesDiffer:
    def test_far_apart(self):
        assert coordinates_differ(MUMBAI, PUNE)

    def test_same_point(self):
        assert not coordinates_differ(MUMBAI, MUMBAI)

    def test_negative_threshold(self):
        with pytest.raises(InvalidDistanceError):
            coordinates_differ(MUMBAI, PUNE, min_km=-1)
