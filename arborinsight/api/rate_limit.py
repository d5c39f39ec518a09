"""
Rate limiter shared by the application and the gateway routers.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from arborinsight.config import settings


limiter = Limiter(key_func=get_remote_address)

# Limit applied to the endpoints that call paid or rate-limited providers
GATEWAY_RATE_LIMIT = f"{settings.rate_limit_requests}/minute"
