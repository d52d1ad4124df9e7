"""Initial schema: users, causes, donations, payment events

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=True, server_default="donor"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "causes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("goal_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("raised_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.CheckConstraint("goal_amount > 0", name="ck_cause_goal_positive"),
        sa.CheckConstraint("raised_amount >= 0", name="ck_cause_raised_non_negative"),
    )
    op.create_index("ix_causes_id", "causes", ["id"], unique=False)

    op.create_table(
        "donations",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_id", sa.String(length=100), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("provider_transaction_id", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("donor_name", sa.String(length=255), nullable=True),
        sa.Column("donor_email", sa.String(length=255), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cause_id", sa.Integer(), sa.ForeignKey("causes.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_donation_amount_positive"),
        sa.CheckConstraint("status IN ('PENDING', 'COMPLETED', 'FAILED')", name="ck_donation_status"),
        sa.CheckConstraint(
            "user_id IS NULL OR (donor_name IS NULL AND donor_email IS NULL)",
            name="ck_donation_single_donor_shape",
        ),
        sa.CheckConstraint(
            "NOT is_anonymous OR (user_id IS NULL AND donor_name IS NULL AND donor_email IS NULL)",
            name="ck_donation_anonymous_has_no_identity",
        ),
    )
    op.create_index("ix_donations_payment_id", "donations", ["payment_id"], unique=True)
    op.create_index("idx_donation_user_created", "donations", ["user_id", "created_at"], unique=False)
    op.create_index("idx_donation_cause_status", "donations", ["cause_id", "status"], unique=False)

    op.create_table(
        "payment_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("donation_id", sa.String(length=32), sa.ForeignKey("donations.id"), nullable=True),
        sa.Column("provider", sa.String(length=20), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("reference", sa.String(length=100), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
    )
    op.create_index("ix_payment_events_id", "payment_events", ["id"], unique=False)
    op.create_index("idx_payment_event_reference", "payment_events", ["reference", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_payment_event_reference", table_name="payment_events")
    op.drop_index("ix_payment_events_id", table_name="payment_events")
    op.drop_table("payment_events")
    op.drop_index("idx_donation_cause_status", table_name="donations")
    op.drop_index("idx_donation_user_created", table_name="donations")
    op.drop_index("ix_donations_payment_id", table_name="donations")
    op.drop_table("donations")
    op.drop_index("ix_causes_id", table_name="causes")
    op.drop_table("causes")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
