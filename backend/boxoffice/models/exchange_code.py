"""
ExchangeCode model: a pre-issued voucher for one general-tier seat.

Codes are stored in canonical form (no whitespace, upper case) so lookups
are plain equality against the unique index.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class ExchangeCode(Base, TimestampMixin):
    __tablename__ = "exchange_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    performer_name = Column(String(255), nullable=True)
    session_id = Column(Integer, ForeignKey("performance_sessions.id"), nullable=True, index=True)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)

    order = relationship("Order", back_populates="exchange_codes")

    __table_args__ = (
        Index("ix_exchange_codes_used_performer", "is_used", "performer_name"),
    )

    def __repr__(self) -> str:
        return f"<ExchangeCode(code={self.code}, used={self.is_used}, order={self.order_id})>"
