"""
Ticket model: one admission unit per purchased seat.

Key design decisions:
- `code` is a random UUID string, unique and never rewritten; it is what the
  QR image encodes and what door scanners send back
- `is_used` flips false -> true once, through a guarded UPDATE
- Tickets are kept after use as the audit trail of who came in
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    ticket_type = Column(String(20), nullable=False)
    code = Column(String(64), nullable=False, unique=True, index=True)
    is_exchanged = Column(Boolean, nullable=False, default=False)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="tickets", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "ticket_type IN ('GENERAL', 'RESERVED', 'VIP1', 'VIP2')",
            name="check_ticket_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, order={self.order_id}, type={self.ticket_type}, used={self.is_used})>"
