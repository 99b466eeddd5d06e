"""
Pricing and discount computation.

Pure functions over captured unit prices and quantities: no database, no
clock. Checkout calls calculate_price() once and stores the breakdown on
the order; audits can recompute it later from the order's own columns and
must get the same numbers.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from boxoffice.core.config import Settings, get_settings
from boxoffice.core.errors import ValidationError
from boxoffice.domain.tiers import TIER_ORDER, Tier, normalize_quantities


@dataclass(frozen=True)
class DiscountPolicy:
    """For every `group_size` eligible general tickets, `units_per_group` get `unit_amount` off."""

    group_size: int = 1
    units_per_group: int = 1
    unit_amount: int = 500
    requires_exchange_code: bool = True

    def __post_init__(self) -> None:
        if self.group_size < 1:
            raise ValueError("Discount group size must be at least 1")
        if self.units_per_group < 0 or self.units_per_group > self.group_size:
            raise ValueError("Discounted units per group must be between 0 and the group size")
        if self.unit_amount < 0:
            raise ValueError("Discount amount cannot be negative")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DiscountPolicy":
        settings = settings or get_settings()
        return cls(
            group_size=settings.DISCOUNT_GROUP_SIZE,
            units_per_group=settings.DISCOUNT_UNITS_PER_GROUP,
            unit_amount=settings.DISCOUNT_UNIT_AMOUNT,
            requires_exchange_code=settings.DISCOUNT_REQUIRES_EXCHANGE_CODE,
        )


@dataclass(frozen=True)
class PriceBreakdown:
    discounted_general_count: int
    discount_amount: int
    subtotal: int
    total: int


def calculate_price(
    unit_prices: Mapping[Tier, Optional[int]],
    quantities: Mapping,
    policy: DiscountPolicy,
    exchange_count: int = 0,
) -> PriceBreakdown:
    """
    Compute subtotal, group discount and total for one purchase.

    Tiers with a zero quantity contribute nothing. A requested tier without
    a price is not offered and is rejected. `exchange_count` is the number
    of exchange codes applied; it cannot exceed the general quantity.
    """
    requested = normalize_quantities(quantities)
    if exchange_count < 0:
        raise ValidationError("Exchange code count cannot be negative")

    general_quantity = requested.get(Tier.GENERAL, 0)
    if exchange_count > general_quantity:
        raise ValidationError(
            f"{exchange_count} exchange codes applied but only {general_quantity} general tickets requested"
        )

    subtotal = 0
    for tier in TIER_ORDER:
        count = requested.get(tier, 0)
        if not count:
            continue
        price = unit_prices.get(tier)
        if price is None:
            raise ValidationError(f"Tier {tier.value} is not offered for this performance")
        if price < 0:
            raise ValidationError(f"Tier {tier.value} has a negative price")
        subtotal += price * count

    eligible = exchange_count if policy.requires_exchange_code else general_quantity
    discounted = (eligible // policy.group_size) * policy.units_per_group
    discounted = min(discounted, eligible)

    general_price = unit_prices.get(Tier.GENERAL) or 0
    per_unit = min(policy.unit_amount, general_price)
    discount_amount = discounted * per_unit

    return PriceBreakdown(
        discounted_general_count=discounted,
        discount_amount=discount_amount,
        subtotal=subtotal,
        total=subtotal - discount_amount,
    )
