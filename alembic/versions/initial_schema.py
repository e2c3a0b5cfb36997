"""Initial schema: orders, shipments, shipment_scans, webhook_events.

Revision ID: initial_schema
Revises:
Create Date: 2026-10-12

"""
from alembic import op
import sqlalchemy as sa


revision = "initial_schema"
down_revision = None
branch_labels = None
depends_on = None

courier_source = sa.Enum("BLUEDART", "SHIPROCKET", name="couriersource")
ops_flag = sa.Enum("SLA_BREACH", "STUCK_IN_TRANSIT", "ESCALATE", name="opsflag")


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("order_number", sa.String(), nullable=True),
        sa.Column("financial_status", sa.String(), nullable=True),
        sa.Column("fulfillment_status", sa.String(), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_gateway_names", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "shipments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("awb", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=True),
        sa.Column("fulfillment_id", sa.String(), nullable=True),
        sa.Column("courier_source", courier_source, nullable=False),
        sa.Column("tracking_company", sa.String(), nullable=True),
        sa.Column("actual_courier", sa.String(), nullable=True),
        sa.Column("last_known_status", sa.String(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_check_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ops_flag", ops_flag, nullable=True),
        sa.Column("ndr_reason", sa.String(), nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_shipments_awb", "shipments", ["awb"], unique=True)
    op.create_index("ix_shipments_order_id", "shipments", ["order_id"])
    op.create_index("ix_shipments_next_check_at", "shipments", ["next_check_at"])

    op.create_table(
        "shipment_scans",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("shipment_id", sa.String(), nullable=False),
        sa.Column("scan_date", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["shipment_id"], ["shipments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shipment_id", "scan_date", "description", name="shipment_scans_unique"),
    )
    op.create_index("ix_shipment_scans_shipment_id", "shipment_scans", ["shipment_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("payload_summary", sa.String(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhook_events_source", "webhook_events", ["source"])
    op.create_index("ix_webhook_events_topic", "webhook_events", ["topic"])


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("shipment_scans")
    op.drop_table("shipments")
    op.drop_table("orders")
    conn = op.get_bind()
    if conn.dialect.name == "postgresql":
        ops_flag.drop(conn, checkfirst=True)
        courier_source.drop(conn, checkfirst=True)
