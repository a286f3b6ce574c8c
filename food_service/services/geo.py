"""Great-circle distance and delivery fee rules."""
from __future__ import annotations

import math
from dataclasses import dataclass

from food_service.db.models import DeliveryType

EARTH_RADIUS_KM = 6371.0
DEFAULT_BASE_FEE = 5000
DEFAULT_RATE_PER_KM = 4000


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in km rounded to two decimals."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 2)


def snap_km(km: float) -> float:
    """Distance snapped up to the next 0.1 km."""
    if km <= 0:
        return 0.0
    # round() first so 1.4 * 10 == 14.000000000000002 does not snap to 1.5
    return math.ceil(round(km * 10, 6)) / 10


def raw_fee(km: float, base_fee: int = DEFAULT_BASE_FEE, rate_per_km: int = DEFAULT_RATE_PER_KM) -> int:
    if base_fee < 0:
        base_fee = DEFAULT_BASE_FEE
    if rate_per_km <= 0:
        rate_per_km = DEFAULT_RATE_PER_KM
    per_km = int(round(snap_km(km) * rate_per_km))
    return base_fee + per_km


def round_fee(raw: int) -> int:
    """Nearest thousand, halves rounded up."""
    if raw <= 0:
        return 0
    return (raw + 500) // 1000 * 1000


def delivery_fee(
    km: float,
    delivery_type: DeliveryType,
    *,
    base_fee: int = DEFAULT_BASE_FEE,
    rate_per_km: int = DEFAULT_RATE_PER_KM,
) -> int:
    if delivery_type == DeliveryType.PICKUP:
        return 0
    return round_fee(raw_fee(km, base_fee, rate_per_km))


@dataclass(frozen=True, slots=True)
class FeeBreakdown:
    base_fee: int
    snapped_km: float
    rate_per_km: int
    distance_part: int
    raw: int
    total: int


def fee_breakdown(
    km: float,
    base_fee: int = DEFAULT_BASE_FEE,
    rate_per_km: int = DEFAULT_RATE_PER_KM,
) -> FeeBreakdown:
    if base_fee < 0:
        base_fee = DEFAULT_BASE_FEE
    if rate_per_km <= 0:
        rate_per_km = DEFAULT_RATE_PER_KM
    snapped = snap_km(km)
    raw = raw_fee(km, base_fee, rate_per_km)
    return FeeBreakdown(
        base_fee=base_fee,
        snapped_km=snapped,
        rate_per_km=rate_per_km,
        distance_part=raw - base_fee,
        raw=raw,
        total=round_fee(raw),
    )

