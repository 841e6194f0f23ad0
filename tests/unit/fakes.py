from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import pytest

from common.supabase import SupabaseError


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _matches(value: Any, expr: str) -> bool:
    # Enough of PostgREST's operator grammar for the jobs under test
    if expr.startswith("not.is."):
        return not _matches(value, expr[len("not."):])
    op, _, arg = expr.partition(".")
    if op == "eq":
        return _fmt(value) == arg
    if op == "neq":
        return _fmt(value) != arg
    if op == "is":
        if arg == "null":
            return value is None
        return value is (arg == "true")
    if op == "in":
        return _fmt(value) in arg.strip("()").split(",")
    if op == "lt":
        return value is not None and _fmt(value) < arg
    raise AssertionError(f"unsupported filter {expr!r}")


class FakeDB:
    """In-memory stand-in for `SupabaseClient`.

    Tables are lists of dict rows; `rpcs` maps a function name to a return
    value or a callable taking the params. `fail` holds `(op, table)` pairs
    that should raise `SupabaseError`.
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Iterable[Dict[str, Any]]]] = None,
        rpcs: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {k: [dict(r) for r in v] for k, v in (tables or {}).items()}
        self.rpcs: Dict[str, Any] = dict(rpcs or {})
        self.calls: List[Tuple[str, str, Any]] = []
        self.fail: Set[Tuple[str, str]] = set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ARG002
        return False

    def _maybe_fail(self, op: str, table: str) -> None:
        if (op, table) in self.fail:
            raise SupabaseError(f"{op} {table} failed", status=500)

    def _rows(self, table: str, filters: Optional[Mapping[str, str]]) -> List[Dict[str, Any]]:
        rows = self.tables.setdefault(table, [])
        return [r for r in rows if all(_matches(r.get(col), expr) for col, expr in (filters or {}).items())]

    def rpc(self, fn: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append(("rpc", fn, params))
        self._maybe_fail("rpc", fn)
        handler = self.rpcs.get(fn)
        return handler(params or {}) if callable(handler) else handler

    def select(self, table, columns="*", *, filters=None, order=None, limit=None):  # noqa: ARG002
        self.calls.append(("select", table, filters))
        self._maybe_fail("select", table)
        rows = [dict(r) for r in self._rows(table, filters)]
        if order:
            col, _, direction = order.split(",")[0].partition(".")
            rows.sort(key=lambda r: (r.get(col) is None, r.get(col)), reverse=direction.startswith("desc"))
        return rows[:limit] if limit is not None else rows

    def insert(self, table, rows):
        self.calls.append(("insert", table, rows))
        self._maybe_fail("insert", table)
        batch = [rows] if isinstance(rows, dict) else list(rows)
        self.tables.setdefault(table, []).extend(dict(r) for r in batch)

    def upsert(self, table, rows, *, on_conflict):
        self.calls.append(("upsert", table, rows))
        self._maybe_fail("upsert", table)
        keys = on_conflict.split(",")
        existing = self.tables.setdefault(table, [])
        for row in [rows] if isinstance(rows, dict) else rows:
            match = next((r for r in existing if all(r.get(k) == row.get(k) for k in keys)), None)
            if match is None:
                existing.append(dict(row))
            else:
                match.update(row)

    def update(self, table, values, *, filters):
        self.calls.append(("update", table, (values, filters)))
        self._maybe_fail("update", table)
        hit = self._rows(table, filters)
        for row in hit:
            row.update(values)
        return [dict(r) for r in hit]

    def delete(self, table, *, filters):
        self.calls.append(("delete", table, filters))
        self._maybe_fail("delete", table)
        hit = self._rows(table, filters)
        self.tables[table] = [r for r in self.tables[table] if r not in hit]
        return [dict(r) for r in hit]

    def writes(self, op: str, table: str) -> List[Any]:
        return [payload for (o, t, payload) in self.calls if o == op and t == table]


class FakeTorn:
    """Routes each call to a plan function keyed by section; unplanned calls fail the test."""

    def __init__(self, **plans: Callable[..., Any]) -> None:
        self.plans = plans
        self.calls: List[Dict[str, Any]] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ARG002
        return False

    def _call(self, section: str, **kwargs: Any) -> Any:
        self.calls.append({"section": section, **kwargs})
        plan = self.plans.get(section)
        if plan is None:
            raise AssertionError(f"unexpected Torn call: {section} {kwargs}")
        return plan(**kwargs)

    def user(self, key, selections, *, user_id=None, **params):
        return self._call("user", key=key, selections=list(selections), user_id=user_id, **params)

    def user_snapshot(self, key):
        return self._call("user_snapshot", key=key)

    def faction(self, key, selections, *, faction_id=None):
        return self._call("faction", key=key, selections=list(selections), faction_id=faction_id)

    def torn(self, key, selections):
        return self._call("torn", key=key, selections=list(selections))

    def item_market(self, key, item_id):
        return self._call("item_market", key=key, item_id=item_id)


class FakePush:
    def __init__(self, *, tickets: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None) -> None:
        self.batches: List[List[Any]] = []
        self._tickets = tickets
        self._error = error

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ARG002
        return False

    def send(self, messages):
        self.batches.append(list(messages))
        if self._error is not None:
            raise self._error
        if self._tickets is not None:
            return self._tickets
        return [{"status": "ok", "id": str(i)} for i, _ in enumerate(messages)]


def patch_env(monkeypatch: pytest.MonkeyPatch, **extra: str) -> None:
    monkeypatch.delenv("PARAM_PREFIX", raising=False)
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
    monkeypatch.setenv("TORN_API_KEY", "torn-key")
    monkeypatch.delenv("FACTION_ID", raising=False)
    for name, value in extra.items():
        monkeypatch.setenv(name, value)


def patch_clients(monkeypatch: pytest.MonkeyPatch, module: Any, *, db=None, torn=None, push=None) -> None:
    if db is not None:
        monkeypatch.setattr(module, "SupabaseClient", lambda *_a, **_k: db)
    if torn is not None:
        monkeypatch.setattr(module, "TornClient", lambda *_a, **_k: torn)
    if push is not None:
        monkeypatch.setattr(module, "ExpoPushClient", lambda *_a, **_k: push)
