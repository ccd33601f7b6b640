"""Initial Tify Events schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "meta",
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("admin_token", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("admin_token"),
    )

    op.create_table(
        "event_zones",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("color", sa.String(length=32), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("rows", sa.Integer(), nullable=False),
        sa.Column("cols", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_zones_event_id", "event_zones", ["event_id"])

    op.create_table(
        "event_seats",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("zone_id", sa.String(length=36), nullable=False),
        sa.Column("row_label", sa.String(length=16), nullable=False),
        sa.Column("col_label", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("holder_name", sa.String(length=255), nullable=True),
        sa.Column("ticket_code", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.ForeignKeyConstraint(["zone_id"], ["event_zones.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_seats_event_id", "event_seats", ["event_id"])

    op.create_table(
        "ticket_purchases",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("billing_name", sa.String(length=255), nullable=False),
        sa.Column("billing_email", sa.String(length=255), nullable=False),
        sa.Column("billing_phone", sa.String(length=64), nullable=False),
        sa.Column("billing_doc_id", sa.String(length=64), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ticket_purchases_event_id", "ticket_purchases", ["event_id"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("zone_id", sa.String(length=36), nullable=False),
        sa.Column("seat_id", sa.String(length=36), nullable=True),
        sa.Column("purchase_id", sa.String(length=36), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=False),
        sa.Column("owner_name", sa.String(length=255), nullable=False),
        sa.Column("owner_email", sa.String(length=255), nullable=False),
        sa.Column("owner_phone", sa.String(length=64), nullable=True),
        sa.Column("owner_doc_id", sa.String(length=64), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("qr_code", sa.String(length=255), nullable=False),
        sa.Column("purchase_date", sa.DateTime(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.ForeignKeyConstraint(["zone_id"], ["event_zones.id"]),
        sa.ForeignKeyConstraint(["seat_id"], ["event_seats.id"]),
        sa.ForeignKeyConstraint(["purchase_id"], ["ticket_purchases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("qr_code"),
    )
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_zone_status", "tickets", ["zone_id", "status"])
    op.create_index("ix_tickets_owner_email", "tickets", ["owner_email"])

    op.create_table(
        "ticket_transfers",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("ticket_id", sa.String(length=36), nullable=False),
        sa.Column("previous_owner_name", sa.String(length=255), nullable=False),
        sa.Column("previous_owner_email", sa.String(length=255), nullable=False),
        sa.Column("new_owner_name", sa.String(length=255), nullable=False),
        sa.Column("new_owner_email", sa.String(length=255), nullable=False),
        sa.Column("transferred_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ticket_transfers_ticket_id", "ticket_transfers", ["ticket_id"])


def downgrade() -> None:
    op.drop_table("ticket_transfers")
    op.drop_table("tickets")
    op.drop_table("ticket_purchases")
    op.drop_table("event_seats")
    op.drop_table("event_zones")
    op.drop_table("events")
    op.drop_table("meta")
