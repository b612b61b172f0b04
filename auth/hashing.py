"""
auth/hashing.py -- Argon2id password hashing via argon2-cffi.

Security design decisions:
  Argon2id is memory-hard: the default 16 MiB per hash makes GPU and ASIC
  brute-force expensive. The parameters are embedded in every encoded hash
  (PHC string), so verify() keeps working after the configuration changes;
  needs_rehash() reports hashes made with old parameters.

  verify() never raises on attacker-controlled input. A mismatch, a corrupt
  stored hash or any other verification error is simply False.

  dummy_hash is a real hash made with the current parameters. The credential
  verifier runs verify() against it when the account does not exist, so that
  path costs exactly as much as a real check [C1].

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from functools import cached_property

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


@dataclass(frozen=True)
class HashingParams:
    """Argon2id cost parameters. memory_cost is in KiB."""

    memory_cost: int = 16384
    time_cost: int = 3
    parallelism: int = 1
    hash_len: int = 32
    salt_len: int = 16


class CredentialHasher:
    """Hash and verify passwords with a fixed set of Argon2id parameters.

    Usage:
        hasher = CredentialHasher(HashingParams())
        h = hasher.hash("S3cretpass")
        hasher.verify(h, "S3cretpass")  # True
    """

    def __init__(self, params: HashingParams | None = None) -> None:
        self.params = params or HashingParams()
        self._hasher = PasswordHasher(
            time_cost=self.params.time_cost,
            memory_cost=self.params.memory_cost,
            parallelism=self.params.parallelism,
            hash_len=self.params.hash_len,
            salt_len=self.params.salt_len,
            type=Type.ID,
        )

    def hash(self, password: str) -> str:
        """Return the encoded Argon2id hash. Hashing errors propagate."""
        return self._hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError, UnicodeError):
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """True if password_hash was made with parameters other than ours."""
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except (InvalidHashError, UnicodeError):
            return True

    @cached_property
    def dummy_hash(self) -> str:
        return self.hash(secrets.token_hex(16))
