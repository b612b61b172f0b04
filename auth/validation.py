"""
auth/validation.py -- Normalization and input rules for registration and login.

Every check here raises AuthError(VALIDATION_ERROR) and runs before any
hashing or storage work. The API layer repeats the shape checks in its
pydantic models; these functions are the authority for callers that reach
the core directly (CLI, other services).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re

from auth.errors import validation_error
from auth.models import AuthMethod, UserRole

EMAIL_MAX_LENGTH = 255
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 255
REFRESH_TOKEN_MAX_LENGTH = 500

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def normalize_phone(phone: str | None) -> str | None:
    if phone is None:
        return None
    phone = phone.strip()
    return phone or None


def validate_email(email: str) -> str:
    if len(email) > EMAIL_MAX_LENGTH:
        raise validation_error(f"Email must not exceed {EMAIL_MAX_LENGTH} characters.", field="email")
    if not _EMAIL_RE.match(email):
        raise validation_error("Email must be a valid email address.", field="email")
    return email


def validate_phone(phone: str, pattern: str) -> str:
    if not re.fullmatch(pattern, phone):
        raise validation_error("Phone must be in format +375XXXXXXXXX.", field="phone")
    return phone


def validate_name(name: str | None) -> str:
    name = (name or "").strip()
    if len(name) < NAME_MIN_LENGTH:
        raise validation_error(f"Name must be at least {NAME_MIN_LENGTH} characters.", field="name")
    if len(name) > NAME_MAX_LENGTH:
        raise validation_error(f"Name must not exceed {NAME_MAX_LENGTH} characters.", field="name")
    return name


def validate_password(password: str | None) -> str:
    """Password policy: 8+ chars with at least one uppercase, one lowercase and one digit."""
    if not password:
        raise validation_error("Password is required.", field="password")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise validation_error(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters.", field="password"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise validation_error(
            f"Password must not exceed {PASSWORD_MAX_LENGTH} characters.", field="password"
        )
    if not (
        re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"\d", password)
    ):
        raise validation_error(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number.",
            field="password",
        )
    return password


def validate_role(role: str) -> str:
    try:
        return UserRole(role).value
    except ValueError:
        raise validation_error("Role must be one of: user, partner, admin.", field="role") from None


def resolve_auth_method(email: str | None, phone: str | None, auth_method: str | None) -> str:
    """Pick the auth method and check it is consistent with the given identifiers.

    When auth_method is omitted it is derived: email wins if present, phone
    otherwise.
    """
    if not email and not phone:
        raise validation_error("Either email or phone must be provided.")
    if auth_method is None:
        return AuthMethod.EMAIL.value if email else AuthMethod.PHONE.value
    try:
        method = AuthMethod(auth_method)
    except ValueError:
        raise validation_error("Auth method must be either email or phone.", field="auth_method") from None
    if method is AuthMethod.EMAIL and not email:
        raise validation_error("Email is required when auth_method is email.", field="email")
    if method is AuthMethod.PHONE and not phone:
        raise validation_error("Phone is required when auth_method is phone.", field="phone")
    return method.value


def validate_presented_token(token: str | None) -> str:
    if not token:
        raise validation_error("Refresh token is required.", field="refresh_token")
    if len(token) > REFRESH_TOKEN_MAX_LENGTH:
        raise validation_error("Refresh token has an invalid format.", field="refresh_token")
    return token


def mask_identifier(identifier: str) -> str:
    """Return a log-safe form: first two characters, then asterisks, then the domain for emails."""
    local, sep, domain = identifier.partition("@")
    visible = local[:2]
    return f"{visible}{'*' * max(len(local) - 2, 1)}{sep}{domain}"
