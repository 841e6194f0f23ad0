from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import httpx


Filters = Mapping[str, str]


class SupabaseError(RuntimeError):
    """PostgREST answered with a non-2xx status."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


# --- PostgREST filter helpers ---
def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def eq(value: Any) -> str:
    return f"eq.{_fmt(value)}"


def neq(value: Any) -> str:
    return f"neq.{_fmt(value)}"


def lt(value: Any) -> str:
    return f"lt.{_fmt(value)}"


def is_(value: Optional[bool]) -> str:
    return f"is.{_fmt(value)}"


def not_is(value: Optional[bool]) -> str:
    return f"not.is.{_fmt(value)}"


def in_(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(_fmt(v) for v in values) + ")"


class SupabaseClient:
    """
    Thin Supabase/PostgREST client over httpx.

    Covers what the jobs need: RPC calls, filtered selects, inserts, upserts,
    filtered updates and deletes. Filters are PostgREST operator strings keyed
    by column, e.g. `{"user_id": eq(7)}`; see the helpers above.
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not url:
            raise ValueError("url is required")
        if not service_key:
            raise ValueError("service_key is required")
        self._owns_client = client is None
        headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
        base_url = f"{url.rstrip('/')}/rest/v1"
        if client is None:
            self._client = httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        else:
            self._client = client
            self._client.base_url = base_url
            self._client.headers.update(headers)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SupabaseClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def rpc(self, fn: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self._client.post(f"/rpc/{fn}", json=params or {})
        return self._json(resp, f"rpc {fn}")

    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        resp = self._client.get(f"/{table}", params=params)
        rows = self._json(resp, f"select {table}")
        return rows if isinstance(rows, list) else []

    def insert(self, table: str, rows: Union[Dict[str, Any], Sequence[Dict[str, Any]]]) -> None:
        resp = self._client.post(f"/{table}", json=rows, headers={"Prefer": "return=minimal"})
        self._check(resp, f"insert {table}")

    def upsert(
        self,
        table: str,
        rows: Union[Dict[str, Any], Sequence[Dict[str, Any]]],
        *,
        on_conflict: str,
    ) -> None:
        resp = self._client.post(
            f"/{table}",
            params={"on_conflict": on_conflict},
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        self._check(resp, f"upsert {table}")

    def update(self, table: str, values: Dict[str, Any], *, filters: Filters) -> List[Dict[str, Any]]:
        """PATCH matching rows; returns the rows as written (empty if none matched)."""
        if not filters:
            raise ValueError("update requires at least one filter")
        resp = self._client.patch(
            f"/{table}",
            params=dict(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        rows = self._json(resp, f"update {table}")
        return rows if isinstance(rows, list) else []

    def delete(self, table: str, *, filters: Filters) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("delete requires at least one filter")
        resp = self._client.delete(
            f"/{table}",
            params=dict(filters),
            headers={"Prefer": "return=representation"},
        )
        rows = self._json(resp, f"delete {table}")
        return rows if isinstance(rows, list) else []

    # --------------- Internal ---------------
    @staticmethod
    def _check(resp: httpx.Response, what: str) -> None:
        if resp.status_code // 100 != 2:
            message = resp.text[:200]
            try:
                body = resp.json()
                if isinstance(body, dict) and body.get("message"):
                    message = str(body["message"])
            except ValueError:
                pass
            raise SupabaseError(f"{what} failed: HTTP {resp.status_code}: {message}", status=resp.status_code)

    def _json(self, resp: httpx.Response, what: str) -> Any:
        self._check(resp, what)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise SupabaseError(f"{what} returned invalid JSON", status=resp.status_code) from exc


__all__ = [
    "SupabaseClient",
    "SupabaseError",
    "eq",
    "in_",
    "is_",
    "lt",
    "neq",
    "not_is",
]
