"""Rate limiting"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

default_limit = f"{settings.RATE_LIMIT_PER_MINUTE}/minute"
