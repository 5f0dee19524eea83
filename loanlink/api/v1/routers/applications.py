from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from loanlink.api import deps
from loanlink.core.exceptions import AlreadyPaid
from loanlink.core.limiter import limiter
from loanlink.core.permissions import Role
from loanlink.core.security import IdentityClaim
from loanlink.core.settings import settings
from loanlink.schemas.application import (
    ApplicationStatus,
    DecisionRequest,
    LoanApplicationCreate,
    LoanApplicationDTO,
    PaymentSessionResponse,
)
from loanlink.services import application_lifecycle, payment_reconciliation
from loanlink.services.application_store import ApplicationStore
from loanlink.services.payment_gateway import PaymentGateway

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post(
    "",
    response_model=LoanApplicationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a loan application",
)
async def submit_application(
    payload: LoanApplicationCreate,
    identity: IdentityClaim = Depends(deps.get_current_identity),
    store: ApplicationStore = Depends(deps.get_application_store),
) -> LoanApplicationDTO:
    application = await application_lifecycle.submit_application(store, identity, payload)
    return LoanApplicationDTO.model_validate(application)


@router.get(
    "",
    response_model=list[LoanApplicationDTO],
    summary="List applications (own for borrowers, all for staff)",
)
async def list_applications(
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    identity: IdentityClaim = Depends(deps.get_current_identity),
    store: ApplicationStore = Depends(deps.get_application_store),
) -> list[LoanApplicationDTO]:
    applications = await application_lifecycle.list_applications(
        store,
        identity,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    return [LoanApplicationDTO.model_validate(application) for application in applications]


@router.get(
    "/{application_id}",
    response_model=LoanApplicationDTO,
    summary="Get one application (owner or staff)",
)
async def get_application(
    application_id: UUID,
    identity: IdentityClaim = Depends(deps.get_current_identity),
    store: ApplicationStore = Depends(deps.get_application_store),
) -> LoanApplicationDTO:
    application = await application_lifecycle.get_application(store, identity, application_id)
    return LoanApplicationDTO.model_validate(application)


@router.post(
    "/{application_id}/decision",
    response_model=LoanApplicationDTO,
    summary="Approve or reject a pending application",
)
async def decide_application(
    application_id: UUID,
    payload: DecisionRequest,
    identity: IdentityClaim = Depends(deps.require_roles(Role.MANAGER, Role.ADMIN)),
    store: ApplicationStore = Depends(deps.get_application_store),
) -> LoanApplicationDTO:
    application = await application_lifecycle.decide_application(
        store,
        identity,
        application_id,
        payload.action,
        reason=payload.reason,
    )
    return LoanApplicationDTO.model_validate(application)


@router.post(
    "/{application_id}/cancel",
    response_model=LoanApplicationDTO,
    summary="Cancel your own pending application",
)
async def cancel_application(
    application_id: UUID,
    identity: IdentityClaim = Depends(deps.get_current_identity),
    store: ApplicationStore = Depends(deps.get_application_store),
) -> LoanApplicationDTO:
    application = await application_lifecycle.cancel_application(store, identity, application_id)
    return LoanApplicationDTO.model_validate(application)


@router.post(
    "/{application_id}/payment-session",
    response_model=PaymentSessionResponse,
    summary="Open a checkout session for the application fee",
)
@limiter.limit(lambda: f"{settings.rate_limit_per_minute}/minute")
async def create_payment_session(
    application_id: UUID,
    request: Request,
    identity: IdentityClaim = Depends(deps.get_current_identity),
    store: ApplicationStore = Depends(deps.get_application_store),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> PaymentSessionResponse:
    try:
        session = await payment_reconciliation.initiate_payment(store, gateway, identity, application_id)
    except AlreadyPaid:
        return PaymentSessionResponse(application_id=application_id, already_paid=True)
    return PaymentSessionResponse(
        application_id=application_id,
        url=session.url,
        session_id=session.session_id,
    )
