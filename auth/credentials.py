"""
auth/credentials.py -- Constant-time login verification.

Every call to verify_credentials() performs exactly one Argon2 verification,
whatever the outcome [C1]:
  - Unknown identifier: verify against the hasher's dummy hash.
  - Inactive account:   verify against the dummy hash (the real hash is not
                        checked, so an attacker learns nothing about it).
  - Known and active:   verify against the stored hash.

The caller always gets None on failure. The three failure reasons are logged
separately, with the identifier masked, for the audit trail.

Post-login bookkeeping (last_login_at, rehash with current parameters) is
best-effort: a storage failure there is logged and the login still succeeds.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import validation_error
from auth.hashing import CredentialHasher
from auth.models import Clock, User, utc_now
from auth.store import UserStore
from auth.validation import mask_identifier, normalize_email, normalize_phone

logger = logging.getLogger("authcore.auth.credentials")


class CredentialVerifier:
    def __init__(self, store: UserStore, hasher: CredentialHasher, clock: Clock = utc_now) -> None:
        self.store = store
        self.hasher = hasher
        self.clock = clock

    def verify_credentials(self, identifier: str, password: str) -> User | None:
        """Return the authenticated user (hash stripped) or None.

        Raises AuthError(VALIDATION_ERROR) for an empty identifier or password,
        before any lookup or hashing.
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise validation_error("Email or phone is required.", field="identifier")
        if not password:
            raise validation_error("Password is required.", field="password")

        masked = mask_identifier(identifier)
        user = self.store.get_by_identifier(
            email=normalize_email(identifier),
            phone=normalize_phone(identifier),
        )

        if user is None or user.password_hash is None:
            # Equalize timing -- do NOT return before running Argon2 [C1]
            self.hasher.verify(self.hasher.dummy_hash, password)
            logger.warning("Login failed for %s: user_not_found", masked)
            return None

        if not user.is_active:
            self.hasher.verify(self.hasher.dummy_hash, password)
            logger.warning("Login failed for %s: account_inactive", masked)
            return None

        if not self.hasher.verify(user.password_hash, password):
            logger.warning("Login failed for %s: invalid_password", masked)
            return None

        self._after_login(user, password)
        logger.info("Login succeeded for user %s", user.id)
        return user.without_secret()

    def _after_login(self, user: User, password: str) -> None:
        now = self.clock()
        try:
            self.store.update_last_login(user.id, now)
        except SQLAlchemyError as exc:
            logger.warning("Could not record last login for user %s: %s", user.id, exc)

        if not self.hasher.needs_rehash(user.password_hash):
            return
        try:
            self.store.update_password_hash(user.id, self.hasher.hash(password), now)
            logger.info("Rehashed password for user %s with current parameters", user.id)
        except SQLAlchemyError as exc:
            logger.warning("Could not store rehashed password for user %s: %s", user.id, exc)
