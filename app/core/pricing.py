"""Seat pricing helpers.

The per-seat price lives in the ``member_monthly_price_cents`` platform
setting; this module only holds the fallback and the arithmetic.
"""

# USD cents per active non-admin member per month.
DEFAULT_MEMBER_MONTHLY_PRICE_CENTS = 999


def seat_cost_change(current_seats: int, billed_seats: int, price_per_seat_cents: int) -> int:
    """Monthly cost delta in cents when moving from billed_seats to current_seats.

    Negative values are savings.
    """
    return (current_seats - billed_seats) * price_per_seat_cents


def monthly_cost(seats: int, price_per_seat_cents: int) -> int:
    """Monthly subscription cost in cents for a seat count."""
    return max(seats, 0) * price_per_seat_cents
