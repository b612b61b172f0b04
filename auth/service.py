"""
auth/service.py -- AuthService: the public face of the auth core.

Wires the hasher, verifier, issuer, rotation engine and revocation manager
around one UserStore and one clock. The HTTP routes and the admin CLI talk
only to this class.

build_auth_service() is the single place where Settings become constructor
arguments. Components never read configuration themselves.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialVerifier
from auth.errors import AuthError, AuthErrorCode
from auth.hashing import CredentialHasher, HashingParams
from auth.models import Clock, RotationResult, TokenPair, User, utc_now
from auth.revocation import RevocationManager
from auth.rotation import RefreshRotationEngine
from auth.store import UserStore, is_unique_violation
from auth.tokens import JoseTokenSigner, TokenPairIssuer, TokenSigner
from auth.validation import (
    normalize_email,
    normalize_phone,
    resolve_auth_method,
    validate_email,
    validate_name,
    validate_password,
    validate_phone,
    validate_role,
)
from core.config import DEFAULT_PHONE_PATTERN

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authcore.auth.service")


class AuthService:
    """Registration, login, token issuance, rotation and revocation.

    Usage:
        service = build_auth_service(get_settings())
        user = service.verify_credentials("anna@example.com", "S3cretpass")
        pair = service.issue_token_pair(user)
        result = service.refresh(pair.refresh_token)
    """

    def __init__(
        self,
        store: UserStore,
        hasher: CredentialHasher,
        signer: TokenSigner,
        clock: Clock = utc_now,
        phone_pattern: str = DEFAULT_PHONE_PATTERN,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.signer = signer
        self.clock = clock
        self.phone_pattern = phone_pattern
        self.verifier = CredentialVerifier(store, hasher, clock)
        self.issuer = TokenPairIssuer(store, signer, clock)
        self.revocation = RevocationManager(store, clock)
        self.rotation = RefreshRotationEngine(store, self.issuer, self.revocation, clock)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def create_user(
        self,
        *,
        password: str,
        name: str,
        email: str | None = None,
        phone: str | None = None,
        auth_method: str | None = None,
        role: str = "user",
    ) -> User:
        """Validate, hash and store a new user. Returns the stored user without its hash.

        Raises AuthError: VALIDATION_ERROR, EMAIL_ALREADY_EXISTS or
        PHONE_ALREADY_EXISTS.
        """
        email = normalize_email(email)
        phone = normalize_phone(phone)
        method = resolve_auth_method(email, phone, auth_method)
        if email:
            validate_email(email)
        if phone:
            validate_phone(phone, self.phone_pattern)
        name = validate_name(name)
        validate_password(password)
        role = validate_role(role)

        # Cheap pre-check so a duplicate does not cost an Argon2 hash. The
        # UNIQUE constraints below remain the authority under concurrency.
        if email and self.store.email_taken(email):
            raise AuthError(AuthErrorCode.EMAIL_ALREADY_EXISTS, field="email")
        if phone and self.store.phone_taken(phone):
            raise AuthError(AuthErrorCode.PHONE_ALREADY_EXISTS, field="phone")

        candidate = User(
            name=name,
            role=role,
            email=email,
            phone=phone,
            password_hash=self.hasher.hash(password),
            auth_method=method,
        )
        try:
            stored = self.store.create_user(candidate, self.clock())
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            if email and self.store.email_taken(email):
                raise AuthError(AuthErrorCode.EMAIL_ALREADY_EXISTS, field="email") from None
            raise AuthError(AuthErrorCode.PHONE_ALREADY_EXISTS, field="phone") from None

        logger.info("Registered user %s (auth_method=%s, role=%s)", stored.id, method, role)
        return stored.without_secret()

    # ------------------------------------------------------------------
    # Login and tokens
    # ------------------------------------------------------------------

    def verify_credentials(self, identifier: str, password: str) -> User | None:
        return self.verifier.verify_credentials(identifier, password)

    def issue_token_pair(self, user: User) -> TokenPair:
        return self.issuer.issue(user)

    def refresh(self, presented_refresh_token: str) -> RotationResult:
        return self.rotation.refresh(presented_refresh_token)

    def verify_access_token(self, token: str) -> dict:
        return self.signer.verify(token)

    # ------------------------------------------------------------------
    # Revocation and account lifecycle
    # ------------------------------------------------------------------

    def invalidate_one(self, refresh_token: str) -> bool:
        return self.revocation.invalidate_one(refresh_token)

    def invalidate_all(self, user_id: str) -> int:
        return self.revocation.invalidate_all(user_id)

    def deactivate_user(self, user_id: str) -> int | None:
        """Disable the account and revoke its sessions.

        Returns the number of refresh tokens revoked, or None if user_id does
        not exist.
        """
        if not self.store.set_active(user_id, False, self.clock()):
            return None
        revoked = self.revocation.invalidate_all(user_id)
        logger.warning("Deactivated user %s, revoked %d session(s)", user_id, revoked)
        return revoked

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_user_by_id(self, user_id: str) -> User | None:
        """Return the active user with this id, hash stripped, or None."""
        user = self.store.get_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user.without_secret()

    def count_active_tokens(self, user_id: str) -> int:
        return self.store.count_active_refresh_tokens(user_id, self.clock())


def build_auth_service(
    settings: Settings,
    store: UserStore | None = None,
    clock: Clock = utc_now,
) -> AuthService:
    """Construct an AuthService from Settings. Opens a UserStore on settings.database_url if none given."""
    params = HashingParams(
        memory_cost=settings.argon2_memory_cost,
        time_cost=settings.argon2_time_cost,
        parallelism=settings.argon2_parallelism,
    )
    signer = JoseTokenSigner(
        settings.secret_key,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        clock=clock,
    )
    return AuthService(
        store=store or UserStore(settings.database_url),
        hasher=CredentialHasher(params),
        signer=signer,
        clock=clock,
        phone_pattern=settings.phone_pattern,
    )
