import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)

from loanlink.db.base import Base


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected', 'Cancelled')",
            name="ck_loan_app_status",
        ),
        CheckConstraint(
            "application_fee_status IN ('Unpaid', 'Paid')",
            name="ck_loan_app_fee_status",
        ),
        CheckConstraint(
            "application_fee_status = 'Unpaid' OR paid_at IS NOT NULL",
            name="ck_loan_app_paid_has_timestamp",
        ),
        Index("ix_loan_applications_borrower_email", "borrower_email"),
        Index("ix_loan_applications_status", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_email = Column(String(255), nullable=False)
    loan_id = Column(String(100), nullable=True)
    loan_title = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    status = Column(String(20), nullable=False, default="Pending")
    approved_at = Column(DateTime(timezone=True), nullable=True)
    decided_by = Column(String(255), nullable=True)
    decision_reason = Column(Text, nullable=True)

    application_fee_status = Column(String(20), nullable=False, default="Unpaid")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    fee_amount = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
