# File: cityfix/core/ratelimit.py
# Project: cityfix

from slowapi import Limiter
from slowapi.util import get_remote_address
from cityfix.core.config import settings

limiter = Limiter(key_func=get_remote_address)
# slowapi re-reads its own RATELIMIT_ENABLED config in the constructor
limiter.enabled = settings.ratelimit_enabled
