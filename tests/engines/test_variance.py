"""
Tests for the variance engine.

Covers:
- variance_percent formula, zero system distance, rounding
- variance_category band boundaries
- input validation (negative, non-numeric, boolean)
- is_variance_acceptable
- Property: percent is non-negative and symmetric in sign of the deviation
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from expense_engines.variance import (
    VarianceBand,
    is_variance_acceptable,
    variance_category,
    variance_percent,
    variance_with_category,
)
from expense_kernel.exceptions import InvalidDistanceError

distances = st.decimals(min_value=0, max_value=10000, places=2, allow_nan=False)
positive = st.decimals(min_value=Decimal("0.01"), max_value=10000, places=2, allow_nan=False)


class TestVariancePercent:
    def test_over_report(self):
        assert variance_percent(Decimal("100"), Decimal("115")) == Decimal("15.00")

    def test_under_report(self):
        assert variance_percent(100, 85) == Decimal("15.00")

    def test_rounds_to_two_places(self):
        assert variance_percent(3, 4) == Decimal("33.33")

    def test_zero_system_distance(self):
        assert variance_percent(0, 25) == Decimal("0.00")

    def test_float_inputs(self):
        assert variance_percent(120.15, 148.3) == Decimal("23.43")

    @pytest.mark.parametrize(
        "system, manual",
        [(-1, 10), (10, -1), ("10", 10), (10, None), (True, 10), (float("inf"), 1)],
    )
    def test_rejects_invalid(self, system, manual):
        with pytest.raises(InvalidDistanceError):
            variance_percent(system, manual)

    @given(positive, distances)
    def test_non_negative_and_sign_symmetric(self, system, manual):
        percent = variance_percent(system, manual)
        assert percent >= 0
        mirrored = system - (manual - system)
        if mirrored >= 0:
            assert variance_percent(system, mirrored) == percent


class TestVarianceCategory:
    @pytest.mark.parametrize(
        "percent, band",
        [
            (Decimal("0"), VarianceBand.LOW),
            (Decimal("10"), VarianceBand.LOW),
            (Decimal("10.01"), VarianceBand.MEDIUM),
            (Decimal("20"), VarianceBand.MEDIUM),
            (Decimal("20.01"), VarianceBand.HIGH),
            (250, VarianceBand.HIGH),
        ],
    )
    def test_bands(self, percent, band):
        assert variance_category(percent) is band

    @pytest.mark.parametrize("percent", [-0.01, "high", None])
    def test_rejects_invalid(self, percent):
        with pytest.raises(InvalidDistanceError):
            variance_category(percent)

    def test_with_category(self):
        result = variance_with_category(100, 130)
        assert result.percent == Decimal("30.00")
        assert result.band is VarianceBand.HIGH


class TestVarianceAcceptable:
    def test_default_threshold(self):
        assert is_variance_acceptable(Decimal("10"))
        assert not is_variance_acceptable(Decimal("10.01"))

    def test_custom_threshold(self):
        assert is_variance_acceptable(15, max_acceptable=20)

    def test_negative_threshold(self):
        with pytest.raises(InvalidDistanceError):
            is_variance_acceptable(5, max_acceptable=-1)
