from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from common.supabase import SupabaseClient, SupabaseError, eq, in_, is_, lt, not_is


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)


def test_filter_helpers():
    assert eq(7) == "eq.7"
    assert eq(True) == "eq.true"
    assert is_(None) == "is.null"
    assert not_is(True) == "not.is.true"
    assert in_([1, 2, 3]) == "in.(1,2,3)"
    assert lt("2024-01-01T00:00:00+00:00") == "lt.2024-01-01T00:00:00+00:00"


def test_rpc_and_auth_headers():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": 1, "decrypted_key": "k"}])

    with SupabaseClient("https://proj.supabase.co/", "svc", client=_client(handler)) as db:
        rows = db.rpc("get_decrypted_users")

    assert rows == [{"id": 1, "decrypted_key": "k"}]
    req = seen[0]
    assert req.method == "POST"
    assert req.url.path == "/rest/v1/rpc/get_decrypted_users"
    assert req.headers["apikey"] == "svc"
    assert req.headers["authorization"] == "Bearer svc"


def test_select_passes_filters_order_limit():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    with SupabaseClient("https://proj.supabase.co", "svc", client=_client(handler)) as db:
        db.select(
            "items",
            "id,name",
            filters={"is_hot_item": eq(True)},
            order="is_hot_item.desc,last_bazaar_sync.asc.nullsfirst",
            limit=50,
        )

    params = seen[0].url.params
    assert seen[0].url.path == "/rest/v1/items"
    assert params["select"] == "id,name"
    assert params["is_hot_item"] == "eq.true"
    assert params["order"] == "is_hot_item.desc,last_bazaar_sync.asc.nullsfirst"
    assert params["limit"] == "50"


def test_upsert_sends_merge_preference():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    with SupabaseClient("https://proj.supabase.co", "svc", client=_client(handler)) as db:
        db.upsert("bank_logs", [{"log_hash": "a"}], on_conflict="log_hash")

    req = seen[0]
    assert req.url.params["on_conflict"] == "log_hash"
    assert "resolution=merge-duplicates" in req.headers["prefer"]
    assert json.loads(req.content) == [{"log_hash": "a"}]


def test_update_returns_written_rows():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"user_id": 1, "energy_full": True}])

    with SupabaseClient("https://proj.supabase.co", "svc", client=_client(handler)) as db:
        rows = db.update(
            "user_notifications",
            {"energy_full": True},
            filters={"user_id": eq(1), "energy_full": not_is(True)},
        )

    assert rows == [{"user_id": 1, "energy_full": True}]
    req = seen[0]
    assert req.method == "PATCH"
    assert req.url.params["energy_full"] == "not.is.true"
    assert req.headers["prefer"] == "return=representation"


def test_update_and_delete_require_filters():
    with SupabaseClient("https://proj.supabase.co", "svc", client=_client(lambda _r: httpx.Response(200))) as db:
        with pytest.raises(ValueError):
            db.update("items", {"x": 1}, filters={})
        with pytest.raises(ValueError):
            db.delete("items", filters={})


def test_error_status_raises_with_message():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"message": "duplicate key value"})

    with SupabaseClient("https://proj.supabase.co", "svc", client=_client(handler)) as db:
        with pytest.raises(SupabaseError) as ei:
            db.insert("networth_logs", {"torn_id": 1})

    assert ei.value.status == 409
    assert "duplicate key value" in str(ei.value)


def test_requires_url_and_key():
    with pytest.raises(ValueError):
        SupabaseClient("", "svc")
    with pytest.raises(ValueError):
        SupabaseClient("https://proj.supabase.co", "")
