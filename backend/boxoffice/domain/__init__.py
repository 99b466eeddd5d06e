from boxoffice.domain.states import OrderStatus, SaleStatus, ensure_order_transition
from boxoffice.domain.tiers import TIER_ORDER, Tier, TierQuantities, normalize_quantities

__all__ = [
    "OrderStatus",
    "SaleStatus",
    "ensure_order_transition",
    "Tier",
    "TIER_ORDER",
    "TierQuantities",
    "normalize_quantities",
]
