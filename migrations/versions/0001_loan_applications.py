"""create loan applications table

Revision ID: 0001_loan_applications
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_loan_applications"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loan_applications",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("borrower_email", sa.String(length=255), nullable=False),
        sa.Column("loan_id", sa.String(length=100), nullable=True),
        sa.Column("loan_title", sa.String(length=255), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.String(length=255), nullable=True),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("application_fee_status", sa.String(length=20), nullable=False, server_default="Unpaid"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("fee_amount", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected', 'Cancelled')",
            name="ck_loan_app_status",
        ),
        sa.CheckConstraint(
            "application_fee_status IN ('Unpaid', 'Paid')",
            name="ck_loan_app_fee_status",
        ),
        sa.CheckConstraint(
            "application_fee_status = 'Unpaid' OR paid_at IS NOT NULL",
            name="ck_loan_app_paid_has_timestamp",
        ),
    )
    op.create_index("ix_loan_applications_borrower_email", "loan_applications", ["borrower_email"])
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])


def downgrade() -> None:
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_borrower_email", table_name="loan_applications")
    op.drop_table("loan_applications")
