"""Rate limiting configuration using slowapi.

A module-level Limiter shared by the routers (per-endpoint limits) and
wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from hrops.config import settings

# Default per client IP; leave submission is tightened via SUBMIT_RATE_LIMIT.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)

submit_limit = settings.SUBMIT_RATE_LIMIT
