"""
expense_engines.distance -- Great-circle distance and journey pricing.

Responsibility:
    The deterministic half of distance estimation: Haversine distance between
    two GPS coordinates, the DistanceEstimate record shared with the remote
    oracle path, and the cost helpers applied when a journey ends.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The remote lookup, retry
    and fallback policy live in expense_services.distance_service.

Invariants enforced:
    - Earth radius 6371 km; results rounded half-up to 2 decimals.
    - Invalid coordinates raise InvalidCoordinateError before any math.
    - Journey cost requires a positive rate (MissingRateError) and a
      non-negative distance (InvalidDistanceError).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal

from expense_engines.tracer import traced_engine
from expense_kernel.domain.values import (
    ZERO,
    Coordinate,
    DistanceSource,
    as_decimal,
    round2,
)
from expense_kernel.exceptions import (
    InvalidAmountError,
    InvalidDistanceError,
    MissingRateError,
)

EARTH_RADIUS_KM = 6371.0
DEFAULT_MIN_SEPARATION_KM = Decimal("0.1")


@dataclass(frozen=True)
class DistanceEstimate:
    """
    Outcome of one distance estimation.

    ``error`` carries the reason the remote path was abandoned when the
    estimate is a fallback; it is informational, never raised.
    """

    distance_km: Decimal
    duration_min: int | None
    source: DistanceSource
    error: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.error is not None


def _to_coordinate(value) -> Coordinate:
    return Coordinate.from_mapping(value)


@traced_engine("haversine", "1.0", fingerprint_fields=("origin", "destination"))
def haversine_km(origin, destination) -> Decimal:
    """
    Great-circle distance in kilometers, rounded to 2 decimals.

    Accepts Coordinate instances, ``{"latitude", "longitude"}`` mappings or
    ``(lat, lng)`` pairs.
    """
    a_pt = _to_coordinate(origin)
    b_pt = _to_coordinate(destination)

    lat1 = math.radians(a_pt.latitude)
    lat2 = math.radians(b_pt.latitude)
    d_lat = math.radians(b_pt.latitude - a_pt.latitude)
    d_lng = math.radians(b_pt.longitude - a_pt.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push near-antipodal points just past 1
    h = min(h, 1.0)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round2(Decimal(repr(EARTH_RADIUS_KM * c)))


def haversine_estimate(origin, destination, error: str | None = None) -> DistanceEstimate:
    """Haversine distance wrapped as an estimate with no duration."""
    return DistanceEstimate(
        distance_km=haversine_km(origin, destination),
        duration_min=None,
        source=DistanceSource.HAVERSINE,
        error=error,
    )


def coordinates_differ(origin, destination, min_km=DEFAULT_MIN_SEPARATION_KM) -> bool:
    """True when the two points are at least ``min_km`` apart."""
    threshold = as_decimal(min_km)
    if threshold is None or threshold < 0:
        raise InvalidDistanceError("min_km", min_km)
    return haversine_km(origin, destination) >= threshold


@traced_engine("journey_cost", "1.0", fingerprint_fields=("distance_km", "rate_per_km"))
def calculate_journey_cost(distance_km, rate_per_km) -> Decimal:
    """``distance_km * rate_per_km`` rounded to 2 decimals."""
    rate = as_decimal(rate_per_km)
    if rate is None or rate <= 0:
        raise MissingRateError(rate_per_km)
    distance = as_decimal(distance_km)
    if distance is None or distance < 0:
        raise InvalidDistanceError("distance_km", distance_km)
    return round2(distance * rate)


def machine_visit_cost(number_of_machines: int | None, cost_per_machine) -> Decimal:
    """Flat per-machine charge for machine visits; zero when no machines."""
    if not number_of_machines:
        return ZERO
    cost = as_decimal(cost_per_machine)
    if cost is None or cost < 0:
        raise InvalidAmountError("cost_per_machine_visit", cost_per_machine)
    return round2(cost * number_of_machines)
