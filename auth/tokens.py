"""
auth/tokens.py -- Access token signing and token pair issuance.

Security design decisions:
  Access tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry user_id, role, email, type="access", plus iat/exp/iss/aud. They
       are stateless -- nothing is stored, and they live 15 minutes.

  Refresh tokens: secrets.token_hex(32) gives 256 bits of entropy as 64 hex
       characters. They are opaque, stored as a row, and only ever exchanged
       through the rotation engine.

  Expiry is checked against the injected clock rather than the system clock
       inside python-jose, so every component agrees on "now".

  verify() raises AuthError with ACCESS_TOKEN_EXPIRED or INVALID_ACCESS_TOKEN.
       The reason a token is invalid (bad signature, wrong audience, wrong
       type) is logged, never returned.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from jose import JWTError, jwt

from auth.errors import AuthError, AuthErrorCode
from auth.models import Clock, RefreshToken, TokenPair, User, new_id, utc_now

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("authcore.auth.tokens")

ACCESS_TOKEN_TTL_SECONDS = 900
REFRESH_TOKEN_TTL = timedelta(days=30)
ACCESS_TOKEN_TYPE = "access"


def generate_refresh_token() -> str:
    return secrets.token_hex(32)


def token_prefix(value: str) -> str:
    """First 8 characters -- the only part of a refresh token that may be logged."""
    return f"{value[:8]}..."


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class TokenSigner(Protocol):
    def sign(self, claims: dict, ttl_seconds: int) -> str: ...

    def verify(self, token: str) -> dict: ...


class JoseTokenSigner:
    """HS256 JWT signer with issuer and audience checks."""

    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        issuer: str = "authcore",
        audience: str = "authcore-api",
        clock: Clock = utc_now,
    ) -> None:
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.clock = clock

    def sign(self, claims: dict, ttl_seconds: int) -> str:
        issued_at = int(self.clock().timestamp())
        payload = {
            **claims,
            "iat": issued_at,
            "exp": issued_at + ttl_seconds,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        """Decode and check a token. Returns the claims or raises AuthError."""
        if not token:
            raise AuthError(AuthErrorCode.INVALID_ACCESS_TOKEN)
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.info("Access token rejected: %s", exc)
            raise AuthError(AuthErrorCode.INVALID_ACCESS_TOKEN) from None

        exp = payload.get("exp")
        if not isinstance(exp, int):
            raise AuthError(AuthErrorCode.INVALID_ACCESS_TOKEN)
        if exp <= self.clock().timestamp():
            raise AuthError(AuthErrorCode.ACCESS_TOKEN_EXPIRED)
        if payload.get("type") != ACCESS_TOKEN_TYPE or "user_id" not in payload:
            raise AuthError(AuthErrorCode.INVALID_ACCESS_TOKEN)
        return payload


def access_claims(user: User) -> dict:
    return {
        "user_id": user.id,
        "role": user.role,
        "email": user.email,
        "type": ACCESS_TOKEN_TYPE,
    }


# ---------------------------------------------------------------------------
# Pair issuance
# ---------------------------------------------------------------------------


class TokenPairIssuer:
    """Mint an access token plus a persisted refresh token for a user.

    prepare() builds the pair and the row without touching storage, so the
    rotation engine can write the row inside its own claim transaction.
    issue() is prepare() followed by a durable insert.
    """

    def __init__(
        self,
        store: UserStore,
        signer: TokenSigner,
        clock: Clock = utc_now,
        access_ttl_seconds: int = ACCESS_TOKEN_TTL_SECONDS,
        refresh_ttl: timedelta = REFRESH_TOKEN_TTL,
    ) -> None:
        self.store = store
        self.signer = signer
        self.clock = clock
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl = refresh_ttl

    def prepare(self, user: User, now: datetime) -> tuple[TokenPair, RefreshToken]:
        access_token = self.signer.sign(access_claims(user), self.access_ttl_seconds)
        row = RefreshToken(
            id=new_id(),
            user_id=user.id,
            token=generate_refresh_token(),
            expires_at=now + self.refresh_ttl,
            created_at=now,
        )
        pair = TokenPair(
            access_token=access_token,
            refresh_token=row.token,
            expires_in=self.access_ttl_seconds,
        )
        return pair, row

    def issue(self, user: User) -> TokenPair:
        """Return a new pair. The refresh token row is committed before this returns."""
        pair, row = self.prepare(user, self.clock())
        self.store.insert_refresh_token(row)
        logger.info("Issued token pair for user %s (refresh %s)", user.id, token_prefix(row.token))
        return pair
