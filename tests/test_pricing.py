from datetime import datetime
from decimal import Decimal

import pytest

from services.pricing import compute_booking_price, round2, split_commission, to_minor_units

START = datetime(2030, 1, 15, 10, 0)


def test_commission_split():
    assert split_commission("100", "0.10") == (Decimal("10.00"), Decimal("90.00"))
    assert split_commission(Decimal("0"), "0.10") == (Decimal("0.00"), Decimal("0.00"))


def test_commission_rounds_half_up():
    # 0.10 * 12.25 = 1.225
    commission, net = split_commission("12.25", "0.10")
    assert commission == Decimal("1.23")
    assert net == Decimal("11.02")


def test_float_input_does_not_leak_binary_noise():
    assert round2(0.1 + 0.2) == Decimal("0.30")


@pytest.mark.parametrize("minutes, expected", [(60, "60.00"), (90, "90.00"), (45, "45.00"), (20, "20.00")])
def test_hourly_price(minutes, expected):
    end = datetime(2030, 1, 15, 10 + minutes // 60, minutes % 60)
    assert compute_booking_price(None, 60, START, end) == Decimal(expected)


def test_fixed_lesson_price_ignores_duration():
    end = datetime(2030, 1, 15, 13, 0)
    assert compute_booking_price(Decimal("25"), 60, START, end) == Decimal("25.00")


def test_odd_rate_rounds_to_cents():
    end = datetime(2030, 1, 15, 10, 20)
    # 25 / 3 = 8.333...
    assert compute_booking_price(None, "25", START, end) == Decimal("8.33")


def test_minor_units():
    assert to_minor_units(Decimal("100")) == 10000
    assert to_minor_units("19.99") == 1999
    assert to_minor_units(0) == 0
