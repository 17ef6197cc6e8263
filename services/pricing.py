from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise along
    return Decimal(str(value))


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_booking_price(lesson_price, hourly_rate, start_time, end_time) -> Decimal:
    """
    A lesson with its own non-zero price is charged that price. Otherwise
    the teacher's hourly rate (missing = 0) is applied to the booked span.
    """
    price = to_decimal(lesson_price)
    if price:
        return round2(price)

    seconds = Decimal((end_time - start_time).total_seconds())
    hours = seconds / Decimal(3600)
    return round2(to_decimal(hourly_rate) * hours)


def split_commission(amount, rate) -> tuple[Decimal, Decimal]:
    """Returns (commission, net_amount) for a paid amount."""
    commission = round2(to_decimal(amount) * to_decimal(rate))
    net_amount = round2(to_decimal(amount) - commission)
    return commission, net_amount


def to_minor_units(amount) -> int:
    # Stripe wants the smallest currency unit (cents)
    return int((round2(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
