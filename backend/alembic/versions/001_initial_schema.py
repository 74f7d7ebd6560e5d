"""Initial schema: events, tiers, seating, bundles, orders, tickets, staff, credits.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("event_type", sa.String(20), nullable=False, server_default=sa.text("'TICKETED_EVENT'")),
        sa.Column("payment_model", sa.String(20), nullable=False, server_default=sa.text("'PRE_PURCHASE'")),
        *_timestamps(),
        sa.CheckConstraint("event_type IN ('TICKETED_EVENT', 'FREE_EVENT')", name="check_event_type"),
        sa.CheckConstraint("payment_model IN ('PRE_PURCHASE', 'PAY_AS_SELL')", name="check_event_payment_model"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    # The credit ledger looks up an organizer's first event by min(id)
    op.create_index("ix_events_organizer_id", "events", ["organizer_id", "id"])

    op.create_table(
        "ticket_tiers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sale_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sale_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        # Final safety net under the CAS updates: a tier can never oversell
        sa.CheckConstraint("sold >= 0", name="check_tier_sold_non_negative"),
        sa.CheckConstraint("sold <= quantity", name="check_tier_sold_lte_quantity"),
        sa.CheckConstraint("quantity >= 0", name="check_tier_quantity_non_negative"),
        sa.CheckConstraint("price_cents >= 0", name="check_tier_price_non_negative"),
    )
    op.create_index("ix_ticket_tiers_id", "ticket_tiers", ["id"])
    op.create_index("ix_ticket_tiers_event_id", "ticket_tiers", ["event_id"])

    op.create_table(
        "seating_charts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("seating_style", sa.String(20), nullable=False, server_default=sa.text("'ROW_BASED'")),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("total_seats", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved_seats", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("reserved_seats >= 0", name="check_chart_reserved_non_negative"),
        sa.CheckConstraint(
            "seating_style IN ('ROW_BASED', 'TABLE_BASED', 'MIXED')", name="check_chart_seating_style"
        ),
    )
    op.create_index("ix_seating_charts_id", "seating_charts", ["id"])
    op.create_index("ix_seating_charts_event_id", "seating_charts", ["event_id"])

    op.create_table(
        "ticket_bundles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("bundle_type", sa.String(20), nullable=False, server_default=sa.text("'SINGLE_EVENT'")),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("event_ids", sa.JSON(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("regular_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sale_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sale_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("bundle_type IN ('SINGLE_EVENT', 'MULTI_EVENT')", name="check_bundle_type"),
        sa.CheckConstraint("sold >= 0", name="check_bundle_sold_non_negative"),
        sa.CheckConstraint("sold <= total_quantity", name="check_bundle_sold_lte_total"),
    )
    op.create_index("ix_ticket_bundles_id", "ticket_bundles", ["id"])
    op.create_index("ix_ticket_bundles_event_id", "ticket_bundles", ["event_id"])

    op.create_table(
        "bundle_tiers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("bundle_id", sa.Integer(), sa.ForeignKey("ticket_bundles.id"), nullable=False),
        sa.Column("tier_id", sa.Integer(), sa.ForeignKey("ticket_tiers.id"), nullable=False),
        sa.Column("tier_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("quantity > 0", name="check_bundle_tier_quantity_positive"),
    )
    op.create_index("ix_bundle_tiers_id", "bundle_tiers", ["id"])
    op.create_index("ix_bundle_tiers_bundle_id", "bundle_tiers", ["bundle_id"])

    op.create_table(
        "event_staff",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("staff_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'SELLER'")),
        sa.Column("commission_type", sa.String(20), nullable=True),
        sa.Column("commission_value", sa.Integer(), nullable=True),
        sa.Column("referral_code", sa.String(50), nullable=False),
        sa.Column("tickets_sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("commission_earned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cash_collected_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('SELLER', 'SCANNER')", name="check_staff_role"),
        sa.CheckConstraint(
            "commission_type IS NULL OR commission_type IN ('PERCENTAGE', 'FIXED')",
            name="check_staff_commission_type",
        ),
    )
    op.create_index("ix_event_staff_id", "event_staff", ["id"])
    op.create_index("uq_event_staff_referral_code", "event_staff", ["referral_code"], unique=True)
    op.create_index("ix_event_staff_organizer_id", "event_staff", ["organizer_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("buyer_email", sa.String(255), nullable=False),
        sa.Column("buyer_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processing_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("selected_seats", sa.JSON(), nullable=True),
        sa.Column("sold_by_staff_id", sa.Integer(), sa.ForeignKey("event_staff.id"), nullable=True),
        sa.Column("referral_code", sa.String(50), nullable=True),
        sa.Column("bundle_id", sa.Integer(), sa.ForeignKey("ticket_bundles.id"), nullable=True),
        sa.Column("bundle_quantity", sa.Integer(), nullable=True),
        sa.Column("payment_id", sa.String(255), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'CANCELLED', 'FAILED', 'REFUNDED')", name="check_order_status"
        ),
        sa.CheckConstraint("subtotal_cents >= 0", name="check_order_subtotal_non_negative"),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
    op.create_index("ix_orders_event_status", "orders", ["event_id", "status"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("ticket_tier_id", sa.Integer(), sa.ForeignKey("ticket_tiers.id"), nullable=False),
        sa.Column("bundle_id", sa.Integer(), sa.ForeignKey("ticket_bundles.id"), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("price_cents >= 0", name="check_order_item_price_non_negative"),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id", "position"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("ticket_tier_id", sa.Integer(), sa.ForeignKey("ticket_tiers.id"), nullable=False),
        sa.Column("attendee_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("attendee_email", sa.String(255), nullable=False),
        sa.Column("attendee_name", sa.String(255), nullable=False),
        sa.Column("ticket_code", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'VALID'")),
        sa.Column("sold_by_staff_id", sa.Integer(), sa.ForeignKey("event_staff.id"), nullable=True),
        sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("order_item_id", name="uq_tickets_order_item_id"),
        sa.CheckConstraint(
            "status IN ('VALID', 'SCANNED', 'CANCELLED', 'REFUNDED')", name="check_ticket_status"
        ),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("uq_tickets_ticket_code", "tickets", ["ticket_code"], unique=True)
    op.create_index("ix_tickets_order_id", "tickets", ["order_id"])
    op.create_index("ix_tickets_attendee_id", "tickets", ["attendee_id"])

    op.create_table(
        "seat_reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("chart_id", sa.Integer(), sa.ForeignKey("seating_charts.id"), nullable=False),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("section_id", sa.String(100), nullable=False),
        sa.Column("row_id", sa.String(100), nullable=True),
        sa.Column("row_label", sa.String(50), nullable=True),
        sa.Column("table_id", sa.String(100), nullable=True),
        sa.Column("table_number", sa.String(50), nullable=True),
        sa.Column("seat_id", sa.String(100), nullable=False),
        sa.Column("seat_number", sa.String(50), nullable=False),
        sa.Column("slot_key", sa.String(320), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'RESERVED'")),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('RESERVED', 'RELEASED', 'CANCELLED')", name="check_reservation_status"
        ),
    )
    op.create_index("ix_seat_reservations_id", "seat_reservations", ["id"])
    # At most one RESERVED row per seat slot, whatever the application does
    op.create_index(
        "uq_seat_reservations_active_slot",
        "seat_reservations",
        ["chart_id", "slot_key"],
        unique=True,
        postgresql_where=sa.text("status = 'RESERVED'"),
    )
    op.create_index("ix_seat_reservations_ticket_id", "seat_reservations", ["ticket_id"])
    op.create_index("ix_seat_reservations_chart_status", "seat_reservations", ["chart_id", "status"])

    op.create_table(
        "staff_sales",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("event_staff.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("sale_amount_cents", sa.Integer(), nullable=False),
        sa.Column("commission_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("cash_collected_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_staff_sales_id", "staff_sales", ["id"])
    op.create_index("ix_staff_sales_staff_id", "staff_sales", ["staff_id"])
    op.create_index("uq_staff_sales_order_id", "staff_sales", ["order_id"], unique=True)

    op.create_table(
        "organizer_credits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("credits_total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credits_used", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credits_remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("free_credits_remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("first_event_free_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("organizer_id", name="uq_organizer_credits_organizer_id"),
        sa.CheckConstraint("credits_remaining >= 0", name="check_credits_remaining_non_negative"),
        sa.CheckConstraint("credits_used >= 0", name="check_credits_used_non_negative"),
        sa.CheckConstraint(
            "free_credits_remaining >= 0 AND free_credits_remaining <= credits_remaining",
            name="check_free_credits_within_remaining",
        ),
    )
    op.create_index("ix_organizer_credits_id", "organizer_credits", ["id"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("tickets_purchased", sa.Integer(), nullable=False),
        sa.Column("price_per_ticket_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("payment_intent_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('PENDING', 'COMPLETED')", name="check_credit_tx_status"),
        sa.CheckConstraint("tickets_purchased > 0", name="check_credit_tx_quantity_positive"),
    )
    op.create_index("ix_credit_transactions_id", "credit_transactions", ["id"])
    op.create_index(
        "uq_credit_transactions_payment_intent", "credit_transactions", ["payment_intent_id"], unique=True
    )
    op.create_index("ix_credit_transactions_organizer_id", "credit_transactions", ["organizer_id"])


def downgrade() -> None:
    op.drop_table("credit_transactions")
    op.drop_table("organizer_credits")
    op.drop_table("staff_sales")
    op.drop_table("seat_reservations")
    op.drop_table("tickets")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("event_staff")
    op.drop_table("bundle_tiers")
    op.drop_table("ticket_bundles")
    op.drop_table("seating_charts")
    op.drop_table("ticket_tiers")
    op.drop_table("events")
    op.drop_table("users")
