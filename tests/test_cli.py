"""Tests for the operator CLI in main.py.

Each test points DATABASE_URL at a fresh SQLite file and clears the
get_settings() cache so the CLI builds its container from that environment.
"""

import json

import pytest

from core.config import get_settings
from main import build_parser, main
from rbac.bootstrap import ADMIN_PERMISSIONS


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("DEFAULT_ADMIN_EMAIL", "ops@example.com")
    monkeypatch.setenv("DEFAULT_ADMIN_PASSWORD", "opspass123")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _run(capsys, *argv) -> tuple[int, dict]:
    code = main([*argv, "--json"])
    return code, json.loads(capsys.readouterr().out)


def test_bootstrap(cli_env, capsys):
    code, report = _run(capsys, "bootstrap")
    assert code == 0
    assert report == {"role_created": True, "admin_created": True, "granted": len(ADMIN_PERMISSIONS), "errors": 0}

    code, report = _run(capsys, "bootstrap")
    assert report["role_created"] is False
    assert report["granted"] == 0


def test_resolve(cli_env, capsys):
    _run(capsys, "bootstrap")
    code, out = _run(capsys, "resolve", "get", "/api/v1/users/42")
    assert code == 0
    assert out == {"method": "GET", "path": "/api/v1/users/42", "action": "user:detail", "registered": True}

    _, out = _run(capsys, "resolve", "POST", "/api/v1/widgets")
    assert out["action"] == "widgets:create"
    assert out["registered"] is False


def test_check_exit_codes(cli_env, capsys):
    _run(capsys, "bootstrap")
    code, out = _run(capsys, "check", "--roles", "ADMIN", "DELETE", "/api/v1/roles/4")
    assert code == 0
    assert out["decision"] == "ALLOW"
    assert out["action"] == "role:delete"

    code, out = _run(capsys, "check", "--roles", "SUPPORT,BILLING", "DELETE", "/api/v1/roles/4")
    assert code == 1
    assert out["decision"] == "DENY"

    code, out = _run(capsys, "check", "GET", "/api/v1/users")
    assert code == 1
    assert out["roles"] == "-"


def test_sweep(cli_env, capsys):
    code, out = _run(capsys, "sweep")
    assert code == 0
    assert out == {"revoked_tokens": 0, "invitation_tokens": 0, "cache_entries": 0}


def test_plain_output(cli_env, capsys):
    assert main(["resolve", "GET", "/api/v1/users"]) == 0
    out = capsys.readouterr().out
    assert "action" in out
    assert "users:list" in out


def test_configuration_error(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    get_settings.cache_clear()
    assert main(["sweep"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_subcommand_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
