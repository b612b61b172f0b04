"""
tests/test_cli.py -- Admin CLI commands in main.py against a temp-file database.
"""

from __future__ import annotations

import pytest

import main
from auth.service import build_auth_service
from core.config import get_settings

PASSWORD = "S3curePass"


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """Point DATABASE_URL at a fresh SQLite file for the duration of one test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _service():
    return build_auth_service(get_settings())


def test_create_user(cli_db, capsys) -> None:
    code = main.main(
        ["create-user", "--name", "Cli Admin", "--email", "cli@example.com", "--role", "admin", "--password", PASSWORD]
    )
    assert code == 0
    assert "Created admin" in capsys.readouterr().out

    service = _service()
    try:
        user = service.verify_credentials("cli@example.com", PASSWORD)
        assert user is not None and user.role == "admin"
    finally:
        service.store.close()


def test_create_user_prompts_for_password(cli_db, monkeypatch) -> None:
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": PASSWORD)
    assert main.main(["create-user", "--name", "Prompted", "--phone", "+375291112233"]) == 0


def test_create_user_rejects_weak_password(cli_db, capsys) -> None:
    code = main.main(["create-user", "--name", "Weak", "--email", "weak@example.com", "--password", "weak"])
    assert code == 1
    assert "VALIDATION_ERROR" in capsys.readouterr().out


def test_revoke_sessions_and_deactivate(cli_db, capsys) -> None:
    service = _service()
    try:
        user = service.create_user(name="Sessions", email="s@example.com", password=PASSWORD)
        service.issue_token_pair(user)
        service.issue_token_pair(user)
    finally:
        service.store.close()

    assert main.main(["revoke-sessions", user.id]) == 0
    assert "Revoked 2" in capsys.readouterr().out

    assert main.main(["deactivate", user.id]) == 0
    assert "Deactivated" in capsys.readouterr().out


def test_deactivate_unknown_user(cli_db, capsys) -> None:
    assert main.main(["deactivate", "missing-id"]) == 1
    assert "No user" in capsys.readouterr().out


def test_no_command_prints_help(capsys) -> None:
    assert main.main([]) == 2
    assert "usage" in capsys.readouterr().out.lower()
