"""
Ticket tiers and per-tier quantity maps.
"""

from enum import Enum
from typing import Mapping

from boxoffice.core.errors import ValidationError


class Tier(str, Enum):
    GENERAL = "GENERAL"
    RESERVED = "RESERVED"
    VIP1 = "VIP1"
    VIP2 = "VIP2"

    @property
    def column_prefix(self) -> str:
        return self.value.lower()

    @property
    def capacity_column(self) -> str:
        return f"{self.column_prefix}_capacity"

    @property
    def sold_column(self) -> str:
        return f"{self.column_prefix}_sold"

    @property
    def quantity_column(self) -> str:
        return f"{self.column_prefix}_quantity"

    @property
    def price_column(self) -> str:
        return f"{self.column_prefix}_price"


# Ledger checks and ticket issuance walk tiers in this order.
TIER_ORDER = (Tier.GENERAL, Tier.RESERVED, Tier.VIP1, Tier.VIP2)

TierQuantities = dict[Tier, int]


def normalize_quantities(quantities: Mapping) -> TierQuantities:
    """Coerce keys to Tier, drop zeros, reject negatives and non-integers."""
    normalized: TierQuantities = {}
    for key, value in quantities.items():
        try:
            tier = key if isinstance(key, Tier) else Tier(str(key).upper())
        except ValueError:
            raise ValidationError(f"Unknown ticket tier: {key}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Quantity for {tier.value} must be an integer")
        if value < 0:
            raise ValidationError(f"Quantity for {tier.value} cannot be negative")
        if value:
            normalized[tier] = normalized.get(tier, 0) + value
    return {tier: normalized[tier] for tier in TIER_ORDER if tier in normalized}


def total_quantity(quantities: Mapping[Tier, int]) -> int:
    return sum(quantities.values())
