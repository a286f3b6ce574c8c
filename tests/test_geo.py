import pytest

from food_service.db.models import DeliveryType
from food_service.services import geo


def test_distance_between_branch_and_customer_is_about_1_4_km() -> None:
    km = geo.distance_km(41.31, 69.24, 41.32, 69.25)
    assert 1.35 <= km <= 1.4
    assert geo.snap_km(km) == pytest.approx(1.4)


def test_distance_is_zero_for_same_point() -> None:
    assert geo.distance_km(41.3, 69.2, 41.3, 69.2) == 0.0


@pytest.mark.parametrize(
    "km, expected",
    [
        (0.0, 0.0),
        (-1.0, 0.0),
        (1.4, 1.4),
        (1.41, 1.5),
        (1.39, 1.4),
        (0.01, 0.1),
    ],
)
def test_snap_km_rounds_up_to_tenth(km, expected) -> None:
    assert geo.snap_km(km) == pytest.approx(expected)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (10600, 11000),
        (10499, 10000),
        (10500, 11000),
        (1000, 1000),
        (0, 0),
        (-300, 0),
    ],
)
def test_round_fee_nearest_thousand(raw, expected) -> None:
    assert geo.round_fee(raw) == expected


def test_round_fee_stays_within_half_thousand() -> None:
    for raw in range(1, 30000, 137):
        rounded = geo.round_fee(raw)
        assert rounded % 1000 == 0
        assert abs(rounded - raw) <= 500


def test_delivery_fee_for_1_4_km_is_11000() -> None:
    assert geo.raw_fee(1.4, 5000, 4000) == 10600
    assert geo.delivery_fee(1.4, DeliveryType.DELIVERY, base_fee=5000, rate_per_km=4000) == 11000


def test_pickup_is_free() -> None:
    assert geo.delivery_fee(12.0, DeliveryType.PICKUP) == 0


def test_invalid_fee_parameters_fall_back_to_defaults() -> None:
    assert geo.raw_fee(1.0, -1, 0) == geo.DEFAULT_BASE_FEE + geo.DEFAULT_RATE_PER_KM


def test_fee_breakdown_parts() -> None:
    breakdown = geo.fee_breakdown(1.39)
    assert breakdown.base_fee == 5000
    assert breakdown.snapped_km == pytest.approx(1.4)
    assert breakdown.distance_part == 5600
    assert breakdown.raw == 10600
    assert breakdown.total == 11000

    fallback = geo.fee_breakdown(1.39, -1, 0)
    assert (fallback.base_fee, fallback.rate_per_km) == (geo.DEFAULT_BASE_FEE, geo.DEFAULT_RATE_PER_KM)
