"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted via SlowAPIMiddleware) and by
api/routes/v1/auth.py (per-route limits with @limiter.limit()). A single
instance means all routes share one in-memory counter store; separate
instances per module would each count alone and never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
