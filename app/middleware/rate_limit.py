"""
Per-client rate limiting shared by the application and its routers.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

# Rate limiter keyed by client address
limiter = Limiter(key_func=get_remote_address)

ANALYSIS_RATE_LIMIT = f"{settings.rate_limit_requests}/minute"

RATE_LIMIT_RESPONSE = {
    429: {
        "description": "Rate limit exceeded",
        "content": {
            "application/json": {
                "example": {"error": f"Rate limit exceeded: {ANALYSIS_RATE_LIMIT}"}
            }
        },
    }
}
