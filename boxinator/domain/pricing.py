"""Shipping cost calculation.

Total cost = flat fee + (weight * country multiplier). Nordic countries are
stored with multiplier 0 and therefore pay only the flat fee.
"""
import math
from typing import Iterable

from boxinator.errors import ValidationFailed

FLAT_FEE = 200  # Kr, charged on every shipment

WEIGHT_TIERS = {
    1: "Basic",
    2: "Humble",
    5: "Deluxe",
    8: "Premium",
}
VALID_WEIGHTS = tuple(WEIGHT_TIERS)

NORDIC_COUNTRIES = ("norway", "sweden", "denmark")


def is_valid_weight(weight_kg) -> bool:
    if isinstance(weight_kg, bool) or not isinstance(weight_kg, (int, float)):
        return False
    return weight_kg in WEIGHT_TIERS


def compute_cost(weight_kg, multiplier) -> float:
    """Return the total shipping cost in Kr.

    Raises ValidationFailed when the weight is not one of the sellable box
    sizes or the multiplier is negative.
    """
    if not is_valid_weight(weight_kg):
        raise ValidationFailed("Invalid weight. Must be 1, 2, 5, or 8 kg")
    if (
        isinstance(multiplier, bool)
        or not isinstance(multiplier, (int, float))
        or not math.isfinite(multiplier)
        or multiplier < 0
    ):
        raise ValidationFailed("Country multiplier must be a finite, non-negative number")
    return float(FLAT_FEE + weight_kg * multiplier)


def tier_name(weight_kg) -> str:
    if not is_valid_weight(weight_kg):
        return "Unknown"
    return WEIGHT_TIERS[weight_kg]


def is_nordic_country(country_name: str) -> bool:
    return country_name.strip().lower() in NORDIC_COUNTRIES


def total_cost(shipments: Iterable) -> float:
    """Sum of the immutable ``total_cost`` of each shipment; 0 when empty."""
    return sum((s.total_cost for s in shipments), 0)
