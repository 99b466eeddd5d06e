"""
Performance and PerformanceSession models.

Key design decisions:
- Prices live on the Performance; capacities and sold counters live on the
  session, which is the unit inventory is tracked against
- `{tier}_sold` is only moved by the inventory ledger's guarded UPDATEs
- CHECK constraints keep 0 <= sold <= capacity per tier as the last line of
  defence if application code ever gets it wrong
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin
from boxoffice.domain.states import SaleStatus
from boxoffice.domain.tiers import TIER_ORDER, Tier


class Performance(Base, TimestampMixin):
    __tablename__ = "performances"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    volume = Column(String(50), nullable=True)
    description = Column(String(2000), nullable=True)
    general_price = Column(Integer, nullable=False)
    reserved_price = Column(Integer, nullable=False)
    vip1_price = Column(Integer, nullable=True)
    vip2_price = Column(Integer, nullable=True)

    sessions = relationship(
        "PerformanceSession",
        back_populates="performance",
        lazy="selectin",
        order_by="PerformanceSession.starts_at",
    )

    __table_args__ = (
        CheckConstraint("general_price >= 0", name="check_general_price_non_negative"),
        CheckConstraint("reserved_price >= 0", name="check_reserved_price_non_negative"),
        CheckConstraint("vip1_price IS NULL OR vip1_price >= 0", name="check_vip1_price_non_negative"),
        CheckConstraint("vip2_price IS NULL OR vip2_price >= 0", name="check_vip2_price_non_negative"),
    )

    def price_for(self, tier: Tier) -> int | None:
        return getattr(self, tier.price_column)

    def __repr__(self) -> str:
        return f"<Performance(id={self.id}, title={self.title}, volume={self.volume})>"


class PerformanceSession(Base, TimestampMixin):
    __tablename__ = "performance_sessions"

    id = Column(Integer, primary_key=True, index=True)
    performance_id = Column(Integer, ForeignKey("performances.id"), nullable=False, index=True)
    show_number = Column(Integer, nullable=False, default=1)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    doors_open_at = Column(DateTime(timezone=True), nullable=True)
    venue_name = Column(String(255), nullable=True)
    venue_address = Column(String(500), nullable=True)

    sale_status = Column(String(20), nullable=False, default=SaleStatus.NOT_ON_SALE.value)
    sale_start_at = Column(DateTime(timezone=True), nullable=True)
    sale_end_at = Column(DateTime(timezone=True), nullable=True)

    general_capacity = Column(Integer, nullable=False, default=0)
    general_sold = Column(Integer, nullable=False, default=0)
    reserved_capacity = Column(Integer, nullable=False, default=0)
    reserved_sold = Column(Integer, nullable=False, default=0)
    vip1_capacity = Column(Integer, nullable=False, default=0)
    vip1_sold = Column(Integer, nullable=False, default=0)
    vip2_capacity = Column(Integer, nullable=False, default=0)
    vip2_sold = Column(Integer, nullable=False, default=0)

    performance = relationship("Performance", back_populates="sessions", lazy="joined")

    __table_args__ = tuple(
        CheckConstraint(
            f"{tier.sold_column} >= 0 AND {tier.sold_column} <= {tier.capacity_column}",
            name=f"check_{tier.column_prefix}_sold_within_capacity",
        )
        for tier in TIER_ORDER
    ) + (
        CheckConstraint(
            "sale_status IN ('NOT_ON_SALE', 'ON_SALE', 'SOLD_OUT', 'CLOSED')",
            name="check_session_sale_status",
        ),
        Index("ix_performance_sessions_status_starts", "sale_status", "starts_at"),
    )

    def capacity(self, tier: Tier) -> int:
        return getattr(self, tier.capacity_column)

    def sold(self, tier: Tier) -> int:
        return getattr(self, tier.sold_column)

    def available(self, tier: Tier) -> int:
        return self.capacity(tier) - self.sold(tier)

    def __repr__(self) -> str:
        return (
            f"<PerformanceSession(id={self.id}, starts_at={self.starts_at}, "
            f"status={self.sale_status}, general={self.general_sold}/{self.general_capacity})>"
        )
