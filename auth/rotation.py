"""
auth/rotation.py -- Strict single-use refresh token rotation with reuse detection.

A refresh token may be exchanged exactly once. Presenting it again means
someone other than the legitimate client holds a copy, so every Active
token of the owner is invalidated and the caller must log in again.

Decision order for a presented token:
  Unknown   -> INVALID_REFRESH_TOKEN        (no side effect)
  Consumed  -> revoke all, REFRESH_TOKEN_REUSE_DETECTED
  Expired   -> REFRESH_TOKEN_EXPIRED        (no side effect)
  Inactive  -> USER_ACCOUNT_INACTIVE        (token left Active)
  Active    -> claim + insert replacement in one transaction

The states are disjoint: a token that was used and has since passed its
expiry is still Consumed, so replaying an old stolen token is reported as
reuse rather than as a harmless expiry.

Race handling: the claim is UPDATE ... WHERE used_at IS NULL. When two
requests race on the same token, the loser's claim affects zero rows and it
takes the reuse path, which also revokes the winner's fresh token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from typing import NoReturn

from auth.errors import AuthError, AuthErrorCode
from auth.models import Clock, RotationResult, TokenState, User, utc_now
from auth.revocation import RevocationManager
from auth.store import UserStore
from auth.tokens import TokenPairIssuer, token_prefix
from auth.validation import validate_presented_token

logger = logging.getLogger("authcore.auth.rotation")


class RefreshRotationEngine:
    def __init__(
        self,
        store: UserStore,
        issuer: TokenPairIssuer,
        revocation: RevocationManager,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.revocation = revocation
        self.clock = clock

    def refresh(self, presented_token: str) -> RotationResult:
        """Exchange presented_token for a new pair. Raises AuthError on every refusal."""
        presented_token = validate_presented_token(presented_token)
        now = self.clock()

        found = self.store.get_refresh_token(presented_token)
        if found is None:
            logger.warning("Refresh rejected: unknown token %s", token_prefix(presented_token))
            raise AuthError(AuthErrorCode.INVALID_REFRESH_TOKEN)
        row, user = found

        state = row.state(now)
        if state is TokenState.CONSUMED:
            self._handle_reuse(user, presented_token)
        if state is TokenState.EXPIRED:
            logger.warning("Refresh rejected: token %s expired", token_prefix(presented_token))
            raise AuthError(AuthErrorCode.REFRESH_TOKEN_EXPIRED)
        if not user.is_active:
            logger.warning("Refresh rejected: user %s is inactive", user.id)
            raise AuthError(AuthErrorCode.USER_ACCOUNT_INACTIVE)

        pair, replacement = self.issuer.prepare(user, now)
        if not self.store.rotate_refresh_token(row.id, replacement, now):
            # Lost the claim to a concurrent request between read and update.
            self._handle_reuse(user, presented_token)

        logger.info(
            "Rotated refresh token %s -> %s for user %s",
            token_prefix(presented_token),
            token_prefix(replacement.token),
            user.id,
        )
        return RotationResult(tokens=pair, user=user.without_secret())

    def _handle_reuse(self, user: User, presented_token: str) -> NoReturn:
        logger.error(
            "SECURITY ALERT: refresh token reuse detected for user %s (token %s)",
            user.id,
            token_prefix(presented_token),
        )
        revoked = self.revocation.invalidate_all(user.id)
        logger.error("Revoked %d active refresh token(s) for user %s after reuse", revoked, user.id)
        raise AuthError(AuthErrorCode.REFRESH_TOKEN_REUSE_DETECTED)
