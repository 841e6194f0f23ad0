from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from common.supabase import SupabaseClient, eq, in_, is_, not_is
from .models import FLAG_FIELDS, StockAlert, TravelCache, UserCredential, UserStatusFlags


NOTIFICATIONS_TABLE = "user_notifications"
TRAVEL_TABLE = "user_travel_status"


class OptimisticLockError(Exception):
    """Raised when a conditional flag write finds the stored value already changed."""


def load_credentials(db: SupabaseClient) -> List[UserCredential]:
    """Decrypted per-user API keys via the `get_decrypted_users` RPC."""
    rows = db.rpc("get_decrypted_users") or []
    return [UserCredential.model_validate(r) for r in rows]


class FlagStore:
    """
    Reads and writes `user_notifications` rows.

    `set_flag` is a compare-and-swap: the PATCH carries a filter on the value we
    last observed, so two overlapping invocations cannot both flip the same flag.
    The loser gets `OptimisticLockError` and must not notify.
    """

    def __init__(self, db: SupabaseClient) -> None:
        self._db = db

    def load(self, user_ids: Iterable[int]) -> Dict[int, UserStatusFlags]:
        ids = list(user_ids)
        if not ids:
            return {}
        rows = self._db.select(NOTIFICATIONS_TABLE, filters={"user_id": in_(ids)})
        out: Dict[int, UserStatusFlags] = {}
        for row in rows:
            flags = UserStatusFlags.model_validate(row)
            out[flags.user_id] = flags
        return out

    def load_with_stock_alerts(self) -> List[UserStatusFlags]:
        rows = self._db.select(
            NOTIFICATIONS_TABLE,
            "user_id,stock_alerts",
            filters={"stock_alerts": not_is(None)},
        )
        out = [UserStatusFlags.model_validate(r) for r in rows]
        return [f for f in out if f.stock_alerts]

    def create(self, user_id: int) -> None:
        self._db.insert(NOTIFICATIONS_TABLE, {"user_id": user_id})

    def set_flag(self, user_id: int, field: str, value: bool, *, expected: bool) -> None:
        if field not in FLAG_FIELDS:
            raise KeyError(field)
        # NULL counts as false, so "expected false" must match NULL as well.
        guard = is_(True) if expected else not_is(True)
        rows = self._db.update(
            NOTIFICATIONS_TABLE,
            {field: value},
            filters={"user_id": eq(user_id), field: guard},
        )
        if not rows:
            raise OptimisticLockError(f"{field} for user {user_id} changed concurrently")

    def save_stock_alerts(self, user_id: int, alerts: List[StockAlert]) -> None:
        self._db.update(
            NOTIFICATIONS_TABLE,
            {"stock_alerts": [a.model_dump() for a in alerts]},
            filters={"user_id": eq(user_id)},
        )


class TravelCacheStore:
    """`user_travel_status` rows: the last travel state we saw per user."""

    def __init__(self, db: SupabaseClient) -> None:
        self._db = db

    def load(self, user_ids: Iterable[int]) -> Dict[int, TravelCache]:
        ids = list(user_ids)
        if not ids:
            return {}
        rows = self._db.select(TRAVEL_TABLE, filters={"user_id": in_(ids)})
        return {c.user_id: c for c in (TravelCache.model_validate(r) for r in rows)}

    def save(
        self,
        user_id: int,
        *,
        travel_state: str,
        travel_destination: Optional[str],
        travel_arrival: Optional[int],
        status_state: Optional[str],
        status_until: Optional[int],
    ) -> None:
        self._db.rpc(
            "upsert_user_travel_status",
            {
                "p_user_id": user_id,
                "p_travel_state": travel_state,
                "p_travel_destination": travel_destination,
                "p_travel_arrival": travel_arrival,
                "p_status_state": status_state,
                "p_status_until": status_until,
            },
        )


__all__ = [
    "FlagStore",
    "OptimisticLockError",
    "TravelCacheStore",
    "load_credentials",
]
