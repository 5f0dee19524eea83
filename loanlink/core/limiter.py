from slowapi import Limiter
from slowapi.util import get_remote_address

from loanlink.core.settings import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.limiter_storage_uri,
)

__all__ = ["limiter"]
