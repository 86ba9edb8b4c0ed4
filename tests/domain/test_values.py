"""
Tests for the domain value helpers: decimal coercion, half-up rounding,
coordinates and the deterministic clock.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from expense_kernel.domain.clock import DeterministicClock
from expense_kernel.domain.values import Coordinate, as_decimal, round2
from expense_kernel.exceptions import InvalidCoordinateError


class TestAsDecimal:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (148.3, Decimal("148.3")),
            (8, Decimal("8")),
            (" 12.50 ", Decimal("12.50")),
            (Decimal("0.1"), Decimal("0.1")),
        ],
    )
    def test_converts(self, value, expected):
        assert as_decimal(value) == expected

    @pytest.mark.parametrize(
        "value", [None, True, False, "abc", "", "NaN", "Infinity", float("inf"), [], {}]
    )
    def test_rejects(self, value):
        assert as_decimal(value) is None


class TestRound2:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("1186.4"), Decimal("1186.40")),
            (Decimal("0.005"), Decimal("0.01")),
            (Decimal("2.675"), Decimal("2.68")),
            (Decimal("-0.005"), Decimal("-0.01")),
            (2.675, Decimal("2.68")),
        ],
    )
    def test_half_up(self, value, expected):
        assert round2(value) == expected

    @given(st.decimals(min_value=-10**9, max_value=10**9, allow_nan=False, places=6))
    def test_within_half_cent(self, value):
        rounded = round2(value)
        assert rounded.as_tuple().exponent == -2
        assert abs(rounded - value) <= Decimal("0.005")


class TestCoordinate:
    def test_from_mapping(self):
        point = Coordinate.from_mapping({"latitude": 19.076, "longitude": 72.8777})
        assert point.as_query() == "19.076,72.8777"

    def test_from_pair(self):
        assert Coordinate.from_mapping((18.5204, 73.8567)) == Coordinate(18.5204, 73.8567)

    def test_decimal_components_become_floats(self):
        point = Coordinate(Decimal("10.5"), Decimal("20"))
        assert isinstance(point.latitude, float)

    @pytest.mark.parametrize(
        "data",
        [
            None,
            {"latitude": 10},
            {"latitude": 91, "longitude": 0},
            {"latitude": 0, "longitude": -181},
            {"latitude": True, "longitude": 0},
            {"latitude": float("nan"), "longitude": 0},
            "19,72",
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(InvalidCoordinateError):
            Coordinate.from_mapping(data)


class TestDeterministicClock:
    def test_advance_and_today(self):
        start = datetime(2025, 12, 31, 23, 59, 30, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        clock.advance(60)
        assert clock.now() == start + timedelta(seconds=60)
        assert clock.today().isoformat() == "2026-01-01"
