"""
tests/test_revocation.py -- Logout, logout-all and account deactivation.
"""

from __future__ import annotations

import pytest

from auth.errors import AuthError, AuthErrorCode

PASSWORD = "S3curePass"


def test_invalidate_one_is_idempotent(service, make_user) -> None:
    user = make_user()
    token = service.issue_token_pair(user).refresh_token

    assert service.invalidate_one(token) is True
    assert service.invalidate_one(token) is False
    assert service.count_active_tokens(user.id) == 0


def test_invalidate_one_unknown_token(service) -> None:
    assert service.invalidate_one("0" * 64) is False


def test_logged_out_token_cannot_refresh(service, make_user) -> None:
    user = make_user()
    token = service.issue_token_pair(user).refresh_token
    service.invalidate_one(token)

    with pytest.raises(AuthError) as exc_info:
        service.refresh(token)
    assert exc_info.value.code is AuthErrorCode.REFRESH_TOKEN_REUSE_DETECTED


def test_invalidate_all_counts_only_active_tokens(service, make_user, clock) -> None:
    user = make_user()
    other = make_user()
    expired = service.issue_token_pair(user).refresh_token
    clock.advance(days=31)
    tokens = [service.issue_token_pair(user).refresh_token for _ in range(3)]
    service.issue_token_pair(other)
    service.invalidate_one(tokens[0])

    assert service.invalidate_all(user.id) == 2
    assert service.invalidate_all(user.id) == 0
    assert service.count_active_tokens(other.id) == 1

    # The expired token was left untouched and still reports as expired.
    with pytest.raises(AuthError) as exc_info:
        service.refresh(expired)
    assert exc_info.value.code is AuthErrorCode.REFRESH_TOKEN_EXPIRED


def test_deactivate_user_revokes_sessions_and_blocks_login(service, make_user) -> None:
    user = make_user(email="anna@example.com")
    service.issue_token_pair(user)
    service.issue_token_pair(user)

    assert service.deactivate_user(user.id) == 2
    assert service.find_user_by_id(user.id) is None
    assert service.verify_credentials("anna@example.com", PASSWORD) is None
    assert service.count_active_tokens(user.id) == 0


def test_deactivate_unknown_user(service) -> None:
    assert service.deactivate_user("no-such-user") is None


def test_find_user_by_id_strips_hash(service, make_user) -> None:
    user = make_user()
    found = service.find_user_by_id(user.id)
    assert found is not None
    assert found.password_hash is None
    assert service.find_user_by_id("no-such-user") is None
