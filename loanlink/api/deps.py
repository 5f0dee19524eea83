from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from loanlink.core.context import set_subject_id
from loanlink.core.permissions import Role
from loanlink.core.security import IdentityClaim, authenticate_token
from loanlink.core.settings import settings
from loanlink.services.application_store import ApplicationStore
from loanlink.services.authz import RoleGate
from loanlink.services.payment_gateway import PaymentGateway

bearer_scheme = HTTPBearer(auto_error=False, description="Session JWT (the `token` cookie is also accepted)")


def get_application_store(request: Request) -> ApplicationStore:
    return request.app.state.store


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> IdentityClaim:
    token = request.cookies.get(settings.session_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    identity = authenticate_token(token)
    set_subject_id(identity.subject_id)
    return identity


def require_roles(*roles: Role | str):
    gate = RoleGate.of(*roles)

    async def dependency(identity: IdentityClaim = Depends(get_current_identity)) -> IdentityClaim:
        gate.check(identity)
        return identity

    return dependency
