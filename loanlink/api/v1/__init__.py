from fastapi import APIRouter

from loanlink.api.v1.routers import applications, health, payments

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(applications.router)
api_router.include_router(payments.router)

__all__ = ["api_router"]
