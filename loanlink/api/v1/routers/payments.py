from fastapi import APIRouter, Depends, Header, Request

from loanlink.api import deps
from loanlink.core.limiter import limiter
from loanlink.schemas.application import PaymentSignalResponse
from loanlink.services import payment_reconciliation
from loanlink.services.application_store import ApplicationStore
from loanlink.services.payment_gateway import PaymentGateway

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/webhook",
    response_model=PaymentSignalResponse,
    summary="Payment processor completion notifications",
)
@limiter.exempt
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    store: ApplicationStore = Depends(deps.get_application_store),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> PaymentSignalResponse:
    # Signature covers the exact bytes received, so read the raw body.
    raw_payload = await request.body()
    result = await payment_reconciliation.handle_payment_signal(
        store,
        gateway,
        raw_payload,
        stripe_signature,
    )
    return PaymentSignalResponse(outcome=result.outcome, application_id=result.application_id)
