"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and api/routes/v1/auth.py
(to apply the per-IP login limit with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. Tests call limiter.reset() between cases.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
