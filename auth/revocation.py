"""
auth/revocation.py -- Invalidate one or all refresh tokens of a user.

Used by logout, logout-all, account deactivation and reuse detection. Both
operations are single conditional UPDATEs (used_at IS NULL -> now), so they
are idempotent and safe to run concurrently with rotations.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.models import Clock, utc_now
from auth.store import UserStore
from auth.tokens import token_prefix

logger = logging.getLogger("authcore.auth.revocation")


class RevocationManager:
    def __init__(self, store: UserStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    def invalidate_one(self, token_value: str) -> bool:
        """Consume a single refresh token. False if it was unknown or already used."""
        changed = self.store.consume_refresh_token(token_value, self.clock())
        if changed:
            logger.info("Refresh token %s invalidated", token_prefix(token_value))
        return changed

    def invalidate_all(self, user_id: str) -> int:
        """Consume every Active refresh token of user_id. Returns how many were consumed."""
        count = self.store.consume_all_refresh_tokens(user_id, self.clock())
        logger.info("Invalidated %d refresh token(s) for user %s", count, user_id)
        return count
