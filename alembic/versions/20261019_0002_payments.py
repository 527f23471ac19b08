"""add payments ledger

Revision ID: b7e2c9d41f08
Revises: a1b2c3d4e5f6
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "b7e2c9d41f08"
down_revision = "a1b2c3d4e5f6"
branch_labels = None
depends_on = None


def upgrade() -> None:
    payment_method = postgresql.ENUM("cash", "card", "bank_transfer", "upi", "cheque", name="payment_method")
    payment_method.create(op.get_bind(), checkfirst=True)
    payment_status = postgresql.ENUM("pending", "completed", "failed", "refunded", name="payment_status")
    payment_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "payments",
        sa.Column("payment_number", sa.String(32), nullable=False),
        sa.Column("invoice_id", sa.UUID(), nullable=False),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("payment_method", postgresql.ENUM(name="payment_method", create_type=False), nullable=False),
        sa.Column("payment_status", postgresql.ENUM(name="payment_status", create_type=False), nullable=False),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payments_payment_number"), "payments", ["payment_number"], unique=True)
    op.create_index(op.f("ix_payments_invoice_id"), "payments", ["invoice_id"], unique=False)
    op.create_index(op.f("ix_payments_customer_id"), "payments", ["customer_id"], unique=False)


def downgrade() -> None:
    op.drop_table("payments")
    postgresql.ENUM(name="payment_status").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="payment_method").drop(op.get_bind(), checkfirst=True)
