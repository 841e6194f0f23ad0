from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

import pytest

from common.torn import TornApiError


def _clear(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "TORN_API_KEY", "FACTION_ID", "PARAM_PREFIX"):
        monkeypatch.delenv(name, raising=False)


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch):
    from common import config

    _clear(monkeypatch)
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "svc")
    monkeypatch.setenv("FACTION_ID", "")

    settings = config.load_settings()

    assert settings.supabase_url == "https://proj.supabase.co"
    assert settings.supabase_key == "svc"
    assert settings.torn_api_key is None
    assert settings.faction_id is None
    with pytest.raises(RuntimeError, match="TORN_API_KEY"):
        settings.require_torn_key()


def test_ssm_fills_only_missing_secrets(monkeypatch: pytest.MonkeyPatch):
    from common import config

    requested: List[List[str]] = []

    def fake_load_ssm_params(prefix: str, names: list[str]) -> Dict[str, Optional[str]]:
        assert prefix == "/torn/dev/"
        requested.append(list(names))
        return {"supabase_service_role_key": "from-ssm", "torn_api_key": "torn-ssm", "faction_id": None}

    _clear(monkeypatch)
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("TORN_API_KEY", "torn-env")
    monkeypatch.setenv("PARAM_PREFIX", "/torn/dev/")
    monkeypatch.setattr(config, "_load_ssm_params", fake_load_ssm_params)

    settings = config.load_settings()

    assert requested == [["supabase_service_role_key", "faction_id"]]
    assert settings.supabase_key == "from-ssm"
    assert settings.torn_api_key == "torn-env"
    assert settings.faction_id is None


def test_missing_supabase_url_raises(monkeypatch: pytest.MonkeyPatch):
    from common import config

    _clear(monkeypatch)
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "svc")
    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        config.load_settings()


def test_respond_shapes():
    from common.runtime import respond

    ok = respond(lambda: {"ok": True, "count": 3})
    assert ok["statusCode"] == 200
    assert ok["headers"]["Content-Type"] == "application/json"
    assert json.loads(ok["body"]) == {"ok": True, "count": 3}

    def torn_down():
        raise TornApiError("Incorrect key", code=2)

    bad = respond(torn_down)
    assert bad["statusCode"] == 400
    assert json.loads(bad["body"]) == {"error": "Incorrect key", "code": 2}

    def broken():
        raise RuntimeError("db unreachable")

    err = respond(broken)
    assert err["statusCode"] == 500
    assert json.loads(err["body"]) == {"error": "db unreachable"}


def test_log_level_from_environment(monkeypatch: pytest.MonkeyPatch):
    from common.runtime import configure_logging

    root = logging.getLogger()
    previous = root.level
    monkeypatch.setenv("LOG_LEVEL", "debug")
    try:
        configure_logging()
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(previous)
