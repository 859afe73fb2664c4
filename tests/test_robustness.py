import importlib
import json
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from gharsewa.services.directory_store import DEMO_USERS


def _reload_auth():
    sys.modules.pop("gharsewa.auth", None)
    return importlib.import_module("gharsewa.auth")


def test_auth_ttl_invalid_env_falls_back(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN_TTL_HOURS", "not-a-number")
    auth = _reload_auth()
    assert auth.TOKEN_TTL_HOURS == 24


def test_auth_ttl_non_positive_env_falls_back(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN_TTL_HOURS", "0")
    auth = _reload_auth()
    assert auth.TOKEN_TTL_HOURS == 24


def test_auth_token_round_trip_and_tamper():
    auth = _reload_auth()
    token, _ = auth.create_access_token("prv_1", "provider")
    assert auth.verify_access_token(token) == auth.TokenClaims(user_id="prv_1", role="provider")
    payload_part = token.split(".", 1)[0]
    assert auth.verify_access_token(f"{payload_part}.AAAA") is None
    assert auth.verify_access_token("garbage") is None
    assert auth.parse_bearer_token("Basic abc") is None


def test_auth_token_refuses_unknown_role():
    auth = _reload_auth()
    with pytest.raises(ValueError):
        auth.create_access_token("prv_1", "admin")


def _load_nearby_report():
    scripts_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), "scripts")
    sys.path.insert(0, scripts_dir)
    try:
        return importlib.import_module("nearby_report")
    finally:
        sys.path.remove(scripts_dir)


def test_nearby_report_script_ranks_seeded_directory(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("DIRECTORY_DB_PATH", str(tmp_path / "report.sqlite3"))
    monkeypatch.setenv("DIRECTORY_SEED_DEMO", "true")
    nearby_report = _load_nearby_report()

    exit_code = nearby_report.main(["--lat", "27.7172", "--lng", "85.3240", "--limit", "10", "--json"])

    assert exit_code == 0
    rows = json.loads(capsys.readouterr().out)
    located_providers = [u for u in DEMO_USERS if u["role"] == "provider" and u["latitude"] is not None]
    assert len(rows) == len(located_providers)
    assert rows[0]["id"] == "prv_thamel_plumbing"
    assert rows[-1]["id"] == "prv_bhaktapur_paint"
    assert [row["rank"] for row in rows] == list(range(1, len(rows) + 1))


def test_nearby_report_firebase_backend_leaves_default_store_alone(tmp_path, monkeypatch, capsys):
    untouched = tmp_path / "untouched.sqlite3"
    monkeypatch.setenv("DIRECTORY_DB_PATH", str(untouched))
    monkeypatch.delenv("FIREBASE_DATABASE_URL", raising=False)
    monkeypatch.delenv("FIREBASE_CREDENTIALS_PATH", raising=False)
    nearby_report = _load_nearby_report()

    exit_code = nearby_report.main(["--lat", "27.7", "--lng", "85.3", "--backend", "firebase"])

    assert exit_code == 1
    assert "FIREBASE_DATABASE_URL" in capsys.readouterr().err
    assert not untouched.exists()
