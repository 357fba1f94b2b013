"""Moneyline odds helpers used by the credibility scorer."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


class OddsConversionError(ValueError):
    """Raised when an odds value cannot be converted."""


def implied_probability(american: int) -> Decimal:
    """Market-implied win probability for American odds, strictly in (0, 1)."""

    if american == 0:
        raise OddsConversionError("American odds cannot be zero")
    if american > 0:
        return Decimal(100) / Decimal(american + 100)
    magnitude = Decimal(abs(american))
    return magnitude / (magnitude + Decimal(100))


def multiplier(probability: Decimal) -> Decimal:
    if probability <= 0 or probability >= 1:
        raise OddsConversionError(f"Implied probability out of range: {probability}")
    return Decimal(1) / probability


def odds_multiplier(american: int) -> Decimal:
    return multiplier(implied_probability(american))


def round_points(value: Decimal) -> int:
    """Round a point value half-up to the nearest integer."""

    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_odds(odds: Optional[int]) -> str:
    if odds is None:
        return "N/A"
    return f"+{odds}" if odds > 0 else str(odds)
