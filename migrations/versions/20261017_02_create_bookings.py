"""create bookings with active slot uniqueness

Revision ID: 20261017_02
Revises: 20261017_01
Create Date: 2026-10-17 09:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_02"
down_revision: Union[str, None] = "20261017_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_BOOKING_CLAUSE = sa.text("status <> 'cancelled'")


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(length=11), nullable=False),
        sa.Column("number_of_players", sa.Integer(), nullable=False),
        sa.Column("equipment", sa.String(length=20), nullable=False, server_default="included"),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_receipt", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="ck_bookings_status"),
        sa.CheckConstraint("equipment IN ('included', 'own')", name="ck_bookings_equipment"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"], unique=False)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"], unique=False)
    op.create_index("ix_bookings_booking_date", "bookings", ["booking_date"], unique=False)
    op.create_index(
        "uq_bookings_active_date_slot",
        "bookings",
        ["booking_date", "time_slot"],
        unique=True,
        postgresql_where=ACTIVE_BOOKING_CLAUSE,
    )


def downgrade() -> None:
    op.drop_index("uq_bookings_active_date_slot", table_name="bookings")
    op.drop_index("ix_bookings_booking_date", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")
