"""Application fee collection.

``initiate_payment`` only talks to the processor; it never writes the store, so
a timed-out or cancelled session request leaves nothing behind.
``reconcile_payment`` is the only writer of the fee fields and is safe to call
any number of times for the same payment: the Unpaid -> Paid flip is a
conditional update, so at most one delivery ever records ``paid_at``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal
from uuid import UUID

from loanlink.core.exceptions import AlreadyPaid, InvalidSignal, InvalidTransition, NotFound
from loanlink.core.logging import audit_event
from loanlink.core.permissions import INITIATE_PAYMENT
from loanlink.core.security import IdentityClaim
from loanlink.core.settings import settings
from loanlink.schemas.application import ApplicationFeeStatus, ApplicationStatus
from loanlink.services.application_lifecycle import get_application_or_404
from loanlink.services.application_store import ApplicationStore
from loanlink.services.authz import OwnerOrStaffGate, RoleGate, apply_guards
from loanlink.services.payment_gateway import GatewaySession, PaymentGateway

logger = logging.getLogger(__name__)

ReconcileOutcome = Literal["paid", "no_op"]

UNPAYABLE_STATUSES = frozenset({ApplicationStatus.CANCELLED.value, ApplicationStatus.REJECTED.value})


@dataclass(frozen=True)
class SignalOutcome:
    outcome: Literal["paid", "no_op", "ignored"]
    application_id: UUID | None = None


async def initiate_payment(
    store: ApplicationStore,
    gateway: PaymentGateway,
    identity: IdentityClaim,
    application_id: UUID,
) -> GatewaySession:
    apply_guards(identity, [RoleGate(INITIATE_PAYMENT)])
    application = await get_application_or_404(store, application_id)
    apply_guards(identity, [OwnerOrStaffGate(application.borrower_email)])

    if application.application_fee_status == ApplicationFeeStatus.PAID.value:
        raise AlreadyPaid(details={"application_id": str(application.id)})
    if application.status in UNPAYABLE_STATUSES:
        raise InvalidTransition(
            f"Cannot collect a fee for an application that is {application.status}",
            details={"status": application.status},
        )

    session = await gateway.create_session(
        application.id,
        settings.application_fee_amount,
        {
            "application_id": str(application.id),
            "borrower_email": application.borrower_email,
        },
        description=application.loan_title,
    )
    logger.info(
        "Opened %s checkout session %s for application %s",
        gateway.provider,
        session.session_id,
        application.id,
    )
    return session


async def reconcile_payment(
    store: ApplicationStore,
    application_id: UUID,
    external_reference: str,
    *,
    amount: int | None = None,
) -> ReconcileOutcome:
    application = await get_application_or_404(store, application_id)
    if application.application_fee_status == ApplicationFeeStatus.PAID.value:
        logger.info(
            "Duplicate payment completion for application %s ignored (reference=%s)",
            application_id,
            external_reference,
        )
        return "no_op"

    applied = await store.conditional_update(
        application_id,
        expected={"application_fee_status": ApplicationFeeStatus.UNPAID},
        new_fields={
            "application_fee_status": ApplicationFeeStatus.PAID,
            "paid_at": datetime.now(timezone.utc),
            "payment_reference": external_reference,
            "fee_amount": amount if amount is not None else settings.application_fee_amount,
        },
    )
    if not applied:
        # A concurrent delivery of the same completion won the write.
        logger.info("Payment for application %s already recorded by a concurrent delivery", application_id)
        return "no_op"

    audit_event(
        "loan_application.fee_paid",
        application_id=str(application_id),
        payment_reference=external_reference,
        amount=amount,
    )
    return "paid"


def _parse_application_id(value: str | None) -> UUID:
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise NotFound("Payment notification references an unknown application") from exc


async def handle_payment_signal(
    store: ApplicationStore,
    gateway: PaymentGateway,
    raw_payload: bytes,
    signature_header: str | None,
) -> SignalOutcome:
    # Raises InvalidSignal before anything touches the store.
    signal = gateway.verify_signal(raw_payload, signature_header)
    if not signal.completed:
        logger.info("Ignoring %s notification of type %s", gateway.provider, signal.event_type)
        return SignalOutcome(outcome="ignored")

    application_id = _parse_application_id(signal.application_id)
    if not signal.external_reference:
        raise InvalidSignal("Payment notification is malformed")
    outcome = await reconcile_payment(
        store,
        application_id,
        signal.external_reference,
        amount=signal.amount,
    )
    return SignalOutcome(outcome=outcome, application_id=application_id)
