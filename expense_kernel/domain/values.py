"""
Values -- enumerations and self-validating value objects.

Responsibility:
    The closed vocabularies (roles, statuses, categories, options) shared by
    models, engines and services, plus the Coordinate value object and the
    Decimal helpers every amount and distance passes through.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models, engines and
    services alike.

Invariants enforced:
    - Coordinates are finite, latitude in [-90, 90], longitude in [-180, 180].
    - Money and distance values are Decimal, rounded half-up to 2 places at
      the boundaries that report them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum, IntEnum
from numbers import Real

from expense_kernel.exceptions import InvalidCoordinateError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class JourneyStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseCategory(str, Enum):
    GENERAL = "general"
    JOURNEY = "journey"


class ExpenseType(str, Enum):
    FOOD = "food"
    LODGING = "lodging"
    FUEL = "fuel"
    TICKETS = "tickets"
    CAR_RENTAL = "car_rental"
    COURIER = "courier"
    TOLL = "toll"
    LOCAL_PURCHASE = "local_purchase"
    TRANSPORT_CHARGES = "transport_charges"
    OFFICE_EXPENSE = "office_expense"
    OTHERS = "others"
    # Legacy types, still accepted on read and write.
    JOURNEY = "journey"
    ACCESSORIES = "accessories"
    OTHER = "other"


class AdvanceStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CHEQUE = "cheque"
    OTHER = "other"


class VisitType(str, Enum):
    SALES_CALL = "sales_call"
    SERVICE_CALL = "service_call"
    INSPECTION = "inspection"
    GROUP_VISIT = "group_visit"
    MACHINE_VISIT = "machine_visit"


class GpsOfflineReason(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    LOCATION_DISABLED = "location_disabled"
    TIMEOUT = "timeout"
    OTHER = "other"


class DistanceSource(str, Enum):
    HAVERSINE = "haversine"
    REMOTE = "google_maps"
    GPS_OFFLINE = "gps_offline"


class ApprovalOption(IntEnum):
    """Which distance figure prices an approval."""

    SYSTEM = 1
    MANUAL = 2
    ADMIN = 3


GLOBAL_SUBJECT = "global"


def as_decimal(value) -> Decimal | None:
    """
    Convert a real number (int, float, Decimal, numeric str) to Decimal.

    Returns None for anything that is not a finite real number, including
    booleans, NaN and infinities.  Floats go through ``str`` so 148.3 stays
    148.3 rather than its binary expansion.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (Real, str)):
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def round2(value: Decimal | int | float) -> Decimal:
    """Round half-up to 2 decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class Coordinate:
    """
    A GPS position in decimal degrees.

    Guarantees:
        - latitude and longitude are finite floats within range; anything
          else raises InvalidCoordinateError at construction.
    """

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lng = self.latitude, self.longitude
        for component in (lat, lng):
            if component is None or isinstance(component, bool) or not isinstance(
                component, (Real, Decimal)
            ):
                raise InvalidCoordinateError(lat, lng, "coordinates must be numbers")
        lat_f, lng_f = float(lat), float(lng)
        if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
            raise InvalidCoordinateError(lat, lng, "coordinates must be finite")
        if not -90.0 <= lat_f <= 90.0:
            raise InvalidCoordinateError(lat, lng, "latitude must be between -90 and 90")
        if not -180.0 <= lng_f <= 180.0:
            raise InvalidCoordinateError(lat, lng, "longitude must be between -180 and 180")
        object.__setattr__(self, "latitude", lat_f)
        object.__setattr__(self, "longitude", lng_f)

    @classmethod
    def from_mapping(cls, data) -> Coordinate:
        """Build from ``{"latitude": .., "longitude": ..}`` or a (lat, lng) pair."""
        if isinstance(data, Coordinate):
            return data
        if data is None:
            raise InvalidCoordinateError(None, None, "coordinates are required")
        if isinstance(data, (tuple, list)) and len(data) == 2:
            return cls(data[0], data[1])
        try:
            return cls(data["latitude"], data["longitude"])
        except (KeyError, TypeError) as exc:
            raise InvalidCoordinateError(None, None, "latitude and longitude are required") from exc

    def as_query(self) -> str:
        """``"lat,lng"`` as used by distance-matrix query strings."""
        return f"{self.latitude},{self.longitude}"
