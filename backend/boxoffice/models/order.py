"""
Order model: one purchase attempt against a performance session.

Key design decisions:
- Unit prices are copied onto the order at checkout so later price edits
  never change what a buyer was charged
- `status` only moves through guarded UPDATEs in order_service
  (WHERE status = 'PENDING'), never by plain attribute assignment
- `payment_reference` is unique so a provider notification resolves to
  exactly one order
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin
from boxoffice.domain.states import OrderStatus
from boxoffice.domain.tiers import TIER_ORDER, Tier, TierQuantities


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("performance_sessions.id"), nullable=False, index=True)
    performance_date = Column(Date, nullable=False)
    performance_label = Column(String(255), nullable=True)

    general_quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    vip1_quantity = Column(Integer, nullable=False, default=0)
    vip2_quantity = Column(Integer, nullable=False, default=0)

    general_price = Column(Integer, nullable=False, default=0)
    reserved_price = Column(Integer, nullable=False, default=0)
    vip1_price = Column(Integer, nullable=True)
    vip2_price = Column(Integer, nullable=True)

    exchanged_quantity = Column(Integer, nullable=False, default=0)
    discounted_general_count = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    subtotal_amount = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False, default=0)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=True)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_reference = Column(String(255), nullable=True, unique=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("PerformanceSession", lazy="joined")
    tickets = relationship("Ticket", back_populates="order", lazy="selectin", order_by="Ticket.id")
    exchange_codes = relationship("ExchangeCode", back_populates="order", lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "general_quantity >= 0 AND reserved_quantity >= 0 "
            "AND vip1_quantity >= 0 AND vip2_quantity >= 0",
            name="check_order_quantities_non_negative",
        ),
        CheckConstraint(
            "general_quantity + reserved_quantity + vip1_quantity + vip2_quantity > 0",
            name="check_order_has_tickets",
        ),
        CheckConstraint("exchanged_quantity <= general_quantity", name="check_exchanged_within_general"),
        CheckConstraint("total_amount >= 0", name="check_order_total_non_negative"),
        CheckConstraint(
            "status IN ('PENDING', 'PAID', 'CANCELLED', 'EXPIRED')",
            name="check_order_status",
        ),
        Index("ix_orders_status_created", "status", "created_at"),
    )

    @property
    def quantities(self) -> TierQuantities:
        return {
            tier: getattr(self, tier.quantity_column)
            for tier in TIER_ORDER
            if getattr(self, tier.quantity_column)
        }

    @property
    def ticket_count(self) -> int:
        return sum(self.quantities.values())

    def unit_price(self, tier: Tier) -> int | None:
        return getattr(self, tier.price_column)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, session={self.session_id}, status={self.status}, total={self.total_amount})>"
