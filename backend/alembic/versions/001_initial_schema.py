"""Initial schema: performances, sessions, orders, tickets, exchange codes.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIERS = ("general", "reserved", "vip1", "vip2")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "performances",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("volume", sa.String(50), nullable=True),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("general_price", sa.Integer(), nullable=False),
        sa.Column("reserved_price", sa.Integer(), nullable=False),
        sa.Column("vip1_price", sa.Integer(), nullable=True),
        sa.Column("vip2_price", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("general_price >= 0", name="check_general_price_non_negative"),
        sa.CheckConstraint("reserved_price >= 0", name="check_reserved_price_non_negative"),
        sa.CheckConstraint("vip1_price IS NULL OR vip1_price >= 0", name="check_vip1_price_non_negative"),
        sa.CheckConstraint("vip2_price IS NULL OR vip2_price >= 0", name="check_vip2_price_non_negative"),
    )
    op.create_index("ix_performances_id", "performances", ["id"])

    # Capacity and sold counters per tier. The CHECKs are the last guard
    # behind the ledger's conditional UPDATEs: sold can never leave [0, capacity].
    tier_columns = []
    tier_checks = []
    for tier in TIERS:
        tier_columns.append(sa.Column(f"{tier}_capacity", sa.Integer(), nullable=False, server_default=sa.text("0")))
        tier_columns.append(sa.Column(f"{tier}_sold", sa.Integer(), nullable=False, server_default=sa.text("0")))
        tier_checks.append(
            sa.CheckConstraint(
                f"{tier}_sold >= 0 AND {tier}_sold <= {tier}_capacity",
                name=f"check_{tier}_sold_within_capacity",
            )
        )

    op.create_table(
        "performance_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("performance_id", sa.Integer(), sa.ForeignKey("performances.id"), nullable=False),
        sa.Column("show_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("doors_open_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("venue_name", sa.String(255), nullable=True),
        sa.Column("venue_address", sa.String(500), nullable=True),
        sa.Column("sale_status", sa.String(20), nullable=False, server_default=sa.text("'NOT_ON_SALE'")),
        sa.Column("sale_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sale_end_at", sa.DateTime(timezone=True), nullable=True),
        *tier_columns,
        *_timestamps(),
        *tier_checks,
        sa.CheckConstraint(
            "sale_status IN ('NOT_ON_SALE', 'ON_SALE', 'SOLD_OUT', 'CLOSED')",
            name="check_session_sale_status",
        ),
    )
    op.create_index("ix_performance_sessions_id", "performance_sessions", ["id"])
    op.create_index("ix_performance_sessions_performance_id", "performance_sessions", ["performance_id"])
    # Backs the public on-sale listing: WHERE sale_status IN (...) ORDER BY starts_at
    op.create_index("ix_performance_sessions_status_starts", "performance_sessions", ["sale_status", "starts_at"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("performance_sessions.id"), nullable=False),
        sa.Column("performance_date", sa.Date(), nullable=False),
        sa.Column("performance_label", sa.String(255), nullable=True),
        *[sa.Column(f"{tier}_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")) for tier in TIERS],
        sa.Column("general_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("vip1_price", sa.Integer(), nullable=True),
        sa.Column("vip2_price", sa.Integer(), nullable=True),
        sa.Column("exchanged_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discounted_general_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("payment_reference", name="uq_orders_payment_reference"),
        sa.CheckConstraint(
            "general_quantity >= 0 AND reserved_quantity >= 0 AND vip1_quantity >= 0 AND vip2_quantity >= 0",
            name="check_order_quantities_non_negative",
        ),
        sa.CheckConstraint(
            "general_quantity + reserved_quantity + vip1_quantity + vip2_quantity > 0",
            name="check_order_has_tickets",
        ),
        sa.CheckConstraint("exchanged_quantity <= general_quantity", name="check_exchanged_within_general"),
        sa.CheckConstraint("total_amount >= 0", name="check_order_total_non_negative"),
        sa.CheckConstraint("status IN ('PENDING', 'PAID', 'CANCELLED', 'EXPIRED')", name="check_order_status"),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_session_id", "orders", ["session_id"])
    op.create_index("ix_orders_customer_email", "orders", ["customer_email"])
    # The expiry sweep: WHERE status = 'PENDING' AND created_at <= cutoff
    op.create_index("ix_orders_status_created", "orders", ["status", "created_at"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("ticket_type", sa.String(20), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("is_exchanged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("ticket_type IN ('GENERAL', 'RESERVED', 'VIP1', 'VIP2')", name="check_ticket_type"),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_order_id", "tickets", ["order_id"])
    op.create_index("ix_tickets_code", "tickets", ["code"], unique=True)

    op.create_table(
        "exchange_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("performer_name", sa.String(255), nullable=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("performance_sessions.id"), nullable=True),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_exchange_codes_id", "exchange_codes", ["id"])
    op.create_index("ix_exchange_codes_code", "exchange_codes", ["code"], unique=True)
    op.create_index("ix_exchange_codes_session_id", "exchange_codes", ["session_id"])
    op.create_index("ix_exchange_codes_order_id", "exchange_codes", ["order_id"])
    op.create_index("ix_exchange_codes_used_performer", "exchange_codes", ["is_used", "performer_name"])


def downgrade() -> None:
    op.drop_table("exchange_codes")
    op.drop_table("tickets")
    op.drop_table("orders")
    op.drop_table("performance_sessions")
    op.drop_table("performances")
