from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ApplicationStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class ApplicationFeeStatus(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"


TERMINAL_STATUSES = frozenset(
    {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.CANCELLED}
)


class DecisionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class LoanApplicationCreate(BaseModel):
    """Borrower submission. Lifecycle fields are never accepted from clients."""

    model_config = ConfigDict(extra="ignore")

    loan_id: str | None = Field(default=None, max_length=100)
    loan_title: str = Field(min_length=1, max_length=255)
    payload: dict[str, Any] = Field(default_factory=dict)


class LoanApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    borrower_email: str
    loan_id: str | None = None
    loan_title: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: ApplicationStatus
    approved_at: datetime | None = None
    decided_by: str | None = None
    decision_reason: str | None = None
    application_fee_status: ApplicationFeeStatus
    paid_at: datetime | None = None
    payment_reference: str | None = None
    fee_amount: int | None = None
    created_at: datetime
    updated_at: datetime | None = None


class DecisionRequest(BaseModel):
    action: DecisionAction
    reason: str | None = Field(default=None, max_length=2000)


class PaymentSessionResponse(BaseModel):
    application_id: UUID
    already_paid: bool = False
    url: str | None = None
    session_id: str | None = None


class PaymentSignalResponse(BaseModel):
    received: bool = True
    outcome: Literal["paid", "no_op", "ignored"]
    application_id: UUID | None = None
