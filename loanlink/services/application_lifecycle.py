from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from loanlink.core.exceptions import Conflict, InvalidTransition, NotFound
from loanlink.core.logging import audit_event
from loanlink.core.permissions import (
    CANCEL_APPLICATION,
    DECIDE_APPLICATION,
    LIST_APPLICATIONS,
    STAFF_ROLES,
    SUBMIT_APPLICATION,
    VIEW_APPLICATION,
)
from loanlink.core.security import IdentityClaim
from loanlink.models.loan_application import LoanApplication
from loanlink.schemas.application import (
    TERMINAL_STATUSES,
    ApplicationFeeStatus,
    ApplicationStatus,
    DecisionAction,
    LoanApplicationCreate,
)
from loanlink.services.application_store import ApplicationStore
from loanlink.services.authz import OwnerGate, OwnerOrStaffGate, RoleGate, apply_guards

logger = logging.getLogger(__name__)

_AUDIT_ACTIONS = {
    "approve": "loan_application.approved",
    "reject": "loan_application.rejected",
    "cancel": "loan_application.cancelled",
}

DECIDE_GATE = RoleGate(DECIDE_APPLICATION)
SUBMIT_GATE = RoleGate(SUBMIT_APPLICATION)
VIEW_GATE = RoleGate(VIEW_APPLICATION)
CANCEL_GATE = RoleGate(CANCEL_APPLICATION)
LIST_GATE = RoleGate(LIST_APPLICATIONS)


async def get_application_or_404(store: ApplicationStore, application_id: UUID) -> LoanApplication:
    application = await store.find_by_id(application_id)
    if application is None:
        raise NotFound(details={"application_id": str(application_id)})
    return application


async def submit_application(
    store: ApplicationStore,
    identity: IdentityClaim,
    data: LoanApplicationCreate,
) -> LoanApplication:
    apply_guards(identity, [SUBMIT_GATE])
    application_id = await store.insert(
        {
            "borrower_email": identity.email,
            "loan_id": data.loan_id,
            "loan_title": data.loan_title,
            "payload": data.payload,
            "status": ApplicationStatus.PENDING,
            "application_fee_status": ApplicationFeeStatus.UNPAID,
        }
    )
    audit_event(
        "loan_application.submitted",
        application_id=str(application_id),
        actor=identity.email,
        status=ApplicationStatus.PENDING.value,
    )
    return await get_application_or_404(store, application_id)


async def get_application(
    store: ApplicationStore,
    identity: IdentityClaim,
    application_id: UUID,
) -> LoanApplication:
    application = await get_application_or_404(store, application_id)
    apply_guards(identity, [VIEW_GATE, OwnerOrStaffGate(application.borrower_email)])
    return application


async def list_applications(
    store: ApplicationStore,
    identity: IdentityClaim,
    *,
    status: ApplicationStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[LoanApplication]:
    """Borrowers see their own applications; managers and admins see all."""
    apply_guards(identity, [LIST_GATE])
    borrower_email = None if identity.role in STAFF_ROLES else identity.email
    return await store.find_many(
        borrower_email=borrower_email,
        status=status,
        limit=limit,
        offset=offset,
    )


async def _transition_from_pending(
    store: ApplicationStore,
    identity: IdentityClaim,
    application: LoanApplication,
    *,
    action: str,
    new_fields: dict[str, Any],
) -> LoanApplication:
    if ApplicationStatus(application.status) in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Cannot {action} an application that is {application.status}",
            details={"status": application.status, "action": action},
        )

    applied = await store.conditional_update(
        application.id,
        expected={"status": ApplicationStatus.PENDING},
        new_fields=new_fields,
    )
    if not applied:
        # Lost the race: someone else moved the application first.
        current = await get_application_or_404(store, application.id)
        logger.info(
            "Conditional %s of application %s did not apply; current status %s",
            action,
            application.id,
            current.status,
        )
        if ApplicationStatus(current.status) in TERMINAL_STATUSES:
            raise InvalidTransition(
                f"Cannot {action} an application that is {current.status}",
                details={"status": current.status, "action": action},
            )
        raise Conflict(details={"application_id": str(application.id), "action": action})

    updated = await get_application_or_404(store, application.id)
    audit_event(
        _AUDIT_ACTIONS[action],
        application_id=str(application.id),
        actor=identity.email,
        role=identity.role.value,
        old_status=ApplicationStatus.PENDING.value,
        new_status=updated.status,
    )
    return updated


async def approve_application(
    store: ApplicationStore,
    identity: IdentityClaim,
    application_id: UUID,
    *,
    reason: str | None = None,
) -> LoanApplication:
    apply_guards(identity, [DECIDE_GATE])
    application = await get_application_or_404(store, application_id)
    return await _transition_from_pending(
        store,
        identity,
        application,
        action="approve",
        new_fields={
            "status": ApplicationStatus.APPROVED,
            "approved_at": datetime.now(timezone.utc),
            "decided_by": identity.email,
            "decision_reason": reason,
        },
    )


async def reject_application(
    store: ApplicationStore,
    identity: IdentityClaim,
    application_id: UUID,
    *,
    reason: str | None = None,
) -> LoanApplication:
    apply_guards(identity, [DECIDE_GATE])
    application = await get_application_or_404(store, application_id)
    return await _transition_from_pending(
        store,
        identity,
        application,
        action="reject",
        new_fields={
            "status": ApplicationStatus.REJECTED,
            "approved_at": None,
            "decided_by": identity.email,
            "decision_reason": reason,
        },
    )


async def decide_application(
    store: ApplicationStore,
    identity: IdentityClaim,
    application_id: UUID,
    action: DecisionAction,
    *,
    reason: str | None = None,
) -> LoanApplication:
    if DecisionAction(action) is DecisionAction.APPROVE:
        return await approve_application(store, identity, application_id, reason=reason)
    return await reject_application(store, identity, application_id, reason=reason)


async def cancel_application(
    store: ApplicationStore,
    identity: IdentityClaim,
    application_id: UUID,
) -> LoanApplication:
    application = await get_application_or_404(store, application_id)
    # Ownership first: a non-owner gets Forbidden whatever the state.
    apply_guards(identity, [CANCEL_GATE, OwnerGate(application.borrower_email)])
    return await _transition_from_pending(
        store,
        identity,
        application,
        action="cancel",
        new_fields={"status": ApplicationStatus.CANCELLED, "approved_at": None},
    )
