from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict

from .rate_limiter import KeyedRateLimiter, RateLimitError


DEFAULT_BASE_URL = "https://api.torn.com"

logger = logging.getLogger(__name__)


class TornError(RuntimeError):
    """Base error for the Torn API client."""


class TornApiError(TornError):
    """API answered with an `{error: {code, error}}` payload or an unusable body."""

    def __init__(self, message: str, *, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class TornRateLimitError(TornError):
    """Local rate limiter prevented the request."""


# --- Response models (only the fields the jobs read) ---
class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Bar(_Lenient):
    current: int = 0
    maximum: int = 0


class Travel(_Lenient):
    time_left: int = 0
    destination: str = "Torn"


class Cooldowns(_Lenient):
    drug: int = 0
    booster: int = 0
    medical: int = 0
    jail: int = 0


class Chain(_Lenient):
    current: int = 0
    timeout: int = 0


class Status(_Lenient):
    state: Optional[str] = None
    until: Optional[int] = None


class UserSnapshot(_Lenient):
    """The parts of `user/?selections=bars,travel,cooldowns,education,profile` we watch.

    Sections absent from the payload stay None so rules can tell "not reported"
    apart from a real zero.
    """

    energy: Optional[Bar] = None
    nerve: Optional[Bar] = None
    happy: Optional[Bar] = None
    life: Optional[Bar] = None
    travel: Optional[Travel] = None
    cooldowns: Optional[Cooldowns] = None
    education_time_left: Optional[int] = None
    chain: Optional[Chain] = None
    status: Optional[Status] = None


class TornClient:
    """
    Minimal Torn API client.

    Notes
    - The API key travels as the `key` query parameter; every call names the key
      to use so one client can serve a whole credential pool.
    - Torn allows 100 requests/minute per key. A per-key sliding window keeps us
      under it.
    - Error payloads raise `TornApiError`. Transport errors and 5xx are retried
      only when `max_attempts > 1`.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        max_per_minute: int = 100,
        timeout: float = 15.0,
        max_attempts: int = 1,
        client: Optional[httpx.Client] = None,
        limiter: Optional[KeyedRateLimiter] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)
        self._limiter = limiter or KeyedRateLimiter(max_calls=max_per_minute, per_seconds=60.0)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TornClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def user(
        self,
        key: str,
        selections: Iterable[str],
        *,
        user_id: Optional[Union[int, str]] = None,
        **params: Any,
    ) -> Dict[str, Any]:
        """GET `user/{user_id}`; omit `user_id` to query the key owner."""
        return self.get("user", key, selections=selections, resource_id=user_id, **params)

    def user_snapshot(self, key: str) -> UserSnapshot:
        data = self.user(key, ["bars", "travel", "cooldowns", "education", "profile"])
        return UserSnapshot.model_validate(data)

    def faction(
        self,
        key: str,
        selections: Iterable[str],
        *,
        faction_id: Optional[Union[int, str]] = None,
    ) -> Dict[str, Any]:
        return self.get("faction", key, selections=selections, resource_id=faction_id)

    def torn(self, key: str, selections: Iterable[str]) -> Dict[str, Any]:
        return self.get("torn", key, selections=selections)

    def item_market(self, key: str, item_id: int) -> Dict[str, Any]:
        """v2 `market/{id}/itemmarket` listings."""
        return self.get("v2/market", key, resource_id=f"{item_id}/itemmarket")

    def get(
        self,
        section: str,
        key: str,
        *,
        selections: Optional[Iterable[str]] = None,
        resource_id: Optional[Union[int, str]] = None,
        **params: Any,
    ) -> Dict[str, Any]:
        if not key:
            raise ValueError("key is required")
        path = f"{self._base_url}/{section}/"
        if resource_id is not None:
            path = f"{self._base_url}/{section}/{resource_id}"
        query: Dict[str, Any] = {k: v for k, v in params.items() if v is not None}
        if selections is not None:
            query["selections"] = ",".join(selections)
        query["key"] = key
        return self._request(path, query, key)

    # --------------- Internal ---------------
    def _request(self, url: str, query: Dict[str, Any], key: str) -> Dict[str, Any]:
        try:
            self._limiter.acquire(key, blocking=True)
        except RateLimitError as rl:
            raise TornRateLimitError("Local rate limiter prevented request") from rl

        attempt = 0
        backoff = 1.0
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                resp = self._client.get(url, params=query)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if resp.status_code == 200:
                    try:
                        payload = resp.json()
                    except ValueError as exc:
                        raise TornApiError("Failed to parse JSON from Torn API") from exc
                    self._raise_on_api_error(payload)
                    return payload
                if resp.status_code in (429, 500, 502, 503, 504):
                    last_exc = TornApiError(f"HTTP {resp.status_code} from Torn")
                else:
                    raise TornApiError(f"HTTP {resp.status_code} from Torn: {resp.text[:200]}")

            attempt += 1
            if attempt < self._max_attempts:
                logger.warning("Torn request failed (%s); retrying in %.1fs", last_exc, backoff)
                time.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

        if isinstance(last_exc, TornError):
            raise last_exc
        raise TornError("Torn request failed") from last_exc

    @staticmethod
    def _raise_on_api_error(payload: Any) -> None:
        if not isinstance(payload, dict):
            raise TornApiError("Unexpected Torn payload shape")
        err = payload.get("error")
        if err is None:
            return
        if isinstance(err, dict):
            code = err.get("code")
            raise TornApiError(str(err.get("error") or "Torn API error"), code=code if isinstance(code, int) else None)
        raise TornApiError(str(err))


__all__ = [
    "Bar",
    "Chain",
    "Cooldowns",
    "Status",
    "TornApiError",
    "TornClient",
    "TornError",
    "TornRateLimitError",
    "Travel",
    "UserSnapshot",
]
