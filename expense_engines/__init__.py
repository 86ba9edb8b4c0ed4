"""
Module: expense_engines
Responsibility:
    Pure calculation engines: distance, variance and approval arithmetic.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import expense_kernel.domain, expense_kernel.exceptions and
    sibling engine modules.  MUST NOT import expense_services.

Invariants enforced:
    - Engines never read the clock, the database or configuration; rates
      and distances are passed in.
    - Money and distance arithmetic is Decimal, rounded half-up to 2 places
      at the reporting boundary.

Usage:
    from expense_engines.distance import haversine_km, calculate_journey_cost
    from expense_engines.variance import variance_percent, variance_category
    from expense_engines.approval import compute_approved_amount
"""

from expense_engines.approval import (
    ApprovalComputation,
    compute_approved_amount,
    select_distance,
)
from expense_engines.distance import (
    EARTH_RADIUS_KM,
    DistanceEstimate,
    calculate_journey_cost,
    coordinates_differ,
    haversine_estimate,
    haversine_km,
    machine_visit_cost,
)
from expense_engines.variance import (
    VarianceBand,
    VarianceResult,
    is_variance_acceptable,
    variance_category,
    variance_percent,
    variance_with_category,
)

__all__ = [
    "ApprovalComputation",
    "DistanceEstimate",
    "EARTH_RADIUS_KM",
    "VarianceBand",
    "VarianceResult",
    "calculate_journey_cost",
    "compute_approved_amount",
    "coordinates_differ",
    "haversine_estimate",
    "haversine_km",
    "is_variance_acceptable",
    "machine_visit_cost",
    "select_distance",
    "variance_category",
    "variance_percent",
    "variance_with_category",
]
