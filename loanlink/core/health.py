from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from loanlink.core.settings import settings
from loanlink.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"


async def _check_db(engine: AsyncEngine | None) -> dict[str, str]:
    if engine is None:
        return {"status": "error", "error": "database not initialised"}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": exc.__class__.__name__}


async def _check_redis() -> dict[str, str]:
    try:
        redis = get_redis_client()
        await redis.ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": exc.__class__.__name__}


def _check_payments() -> dict[str, str]:
    if not settings.stripe_secret_key or not settings.stripe_webhook_secret:
        return {"status": "error", "error": "payment processor credentials missing"}
    return {"status": "ok"}


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload(engine: AsyncEngine | None) -> dict[str, Any]:
    checks = {
        "database": await _check_db(engine),
        "redis": await _check_redis(),
        "payments": _check_payments(),
    }
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
