"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

A single shared instance keeps one counter store for every route. Limits are
per client IP: register 20/min, login 10/min, refresh 50/min.

The counters live in process memory. Behind several server processes each
one counts separately -- point storage_uri at Redis to share them.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
