"""
expense_engines.variance -- Distance variance between system and claimed figures.

Responsibility:
    Percentage deviation of the employee-reported (manual) distance from the
    system-measured distance, and its low/medium/high band.  Used for
    reviewer display and for the bulk-approval variance filter.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - percent = |manual - system| / system * 100, rounded half-up to 2
      decimals; system == 0 yields 0 (a missing system figure is never
      penalized).
    - Bands: percent <= 10 is low, 10 < percent <= 20 is medium, above 20
      is high.  Boundaries belong to the lower band.

Failure modes:
    - InvalidDistanceError for negative or non-numeric distances or percent.

Usage:
    from expense_engines.variance import variance_with_category

    result = variance_with_category(system_km=Decimal("100"), manual_km=Decimal("115"))
    result.percent   # Decimal("15.00")
    result.band      # VarianceBand.MEDIUM
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from numbers import Real

from expense_engines.tracer import traced_engine
from expense_kernel.domain.values import ZERO, round2
from expense_kernel.exceptions import InvalidDistanceError

LOW_BAND_MAX = Decimal("10")
MEDIUM_BAND_MAX = Decimal("20")
DEFAULT_MAX_ACCEPTABLE = Decimal("10")


class VarianceBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class VarianceResult:
    percent: Decimal
    band: VarianceBand


def _require_non_negative(field: str, value) -> Decimal:
    """Accept int, float or Decimal >= 0; booleans and strings are rejected."""
    if value is None or isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise InvalidDistanceError(field, value)
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidDistanceError(field, value)
    result = value if isinstance(value, Decimal) else Decimal(str(value))
    if not result.is_finite() or result < 0:
        raise InvalidDistanceError(field, value)
    return result


@traced_engine("variance", "1.0", fingerprint_fields=("system_km", "manual_km"))
def variance_percent(system_km, manual_km) -> Decimal:
    """Percentage deviation of ``manual_km`` from ``system_km``."""
    system = _require_non_negative("system_distance", system_km)
    manual = _require_non_negative("manual_distance", manual_km)
    if system == 0:
        return round2(ZERO)
    return round2(abs(manual - system) / system * 100)


def variance_category(percent) -> VarianceBand:
    """Band a variance percentage; the boundary values fall in the lower band."""
    value = _require_non_negative("variance_percent", percent)
    if value <= LOW_BAND_MAX:
        return VarianceBand.LOW
    if value <= MEDIUM_BAND_MAX:
        return VarianceBand.MEDIUM
    return VarianceBand.HIGH


def variance_with_category(system_km, manual_km) -> VarianceResult:
    percent = variance_percent(system_km, manual_km)
    return VarianceResult(percent=percent, band=variance_category(percent))


def is_variance_acceptable(percent, max_acceptable=DEFAULT_MAX_ACCEPTABLE) -> bool:
    value = _require_non_negative("variance_percent", percent)
    limit = _require_non_negative("max_acceptable", max_acceptable)
    return value <= limit
