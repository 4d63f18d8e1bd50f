"""Payment amounts for work segments."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from leave_ledger.calculators.types import ONE, ZERO, RateCalculationMethod, Service


def is_quarter_hour(hours: Decimal) -> bool:
    """Hours must be a multiple of 0.25 (after rounding to hundredths)."""
    hundredths = (Decimal(hours) * 100).to_integral_value(rounding=ROUND_HALF_UP)
    return hundredths % 25 == 0


def price_hourly(hours: Decimal, rate: Decimal) -> Decimal:
    return Decimal(hours) * Decimal(rate)


def price_instructor(
    service: Service | None,
    rate: Decimal,
    sessions_count: int | None,
    students_count: int | None,
) -> Decimal:
    """Per-session services pay sessions * rate; per-student services also multiply by students."""
    sessions = sessions_count or 1
    if service is not None and service.payment_model == RateCalculationMethod.PER_STUDENT:
        return Decimal(sessions) * Decimal(students_count or 0) * Decimal(rate)
    return Decimal(sessions) * Decimal(rate)


def payable_day_portion(leave_portion: Decimal) -> Decimal:
    """Share of the day still payable as work after leave is taken out."""
    return max(ZERO, ONE - leave_portion)


def allocate_global_day_payment(
    daily_rate: Decimal,
    portion: Decimal,
    segment_count: int,
    already_paid: bool = False,
) -> list[Decimal]:
    """Split a global employee's single daily payment across segments.

    The first segment carries ``daily_rate * portion``; every other segment
    pays zero. When a paid segment already exists outside this submission
    the day has been paid and every segment pays zero.
    """
    if segment_count <= 0:
        return []
    payments = [ZERO] * segment_count
    if not already_paid:
        payments[0] = Decimal(daily_rate) * portion
    return payments
