from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from loanlink.core.health import live_payload, ready_payload
from loanlink.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/health/ready", summary="Service readiness check")
@limiter.exempt
async def health_ready(request: Request) -> JSONResponse:
    payload = await ready_payload(getattr(request.app.state, "engine", None))
    if payload["ready"]:
        return JSONResponse(status_code=200, content=payload)
    return JSONResponse(
        status_code=503,
        content={
            "code": "service_unavailable",
            "message": "Service Unavailable",
            "data": payload,
            "details": {},
        },
    )
