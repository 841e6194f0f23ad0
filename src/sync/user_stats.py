from __future__ import annotations

import logging
from typing import Any, Dict, List

from common.concurrency import fan_out
from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError
from common.torn import TornClient
from state.flags import load_credentials
from state.models import UserCredential
from sync.derive import iso, utc_now


logger = logging.getLogger(__name__)


def stats_row(user_id: int, data: Dict[str, Any], now: str) -> Dict[str, Any]:
    # Battle stats come back at the top level; older payloads nest them.
    bs = data.get("battlestats") or data
    nw = data.get("networth") or {}
    return {
        "user_id": user_id,
        "username": data.get("name"),
        "level": data.get("level"),
        "gender": data.get("gender"),
        "strength": bs.get("strength") or 0,
        "defense": bs.get("defense") or 0,
        "speed": bs.get("speed") or 0,
        "dexterity": bs.get("dexterity") or 0,
        "total_stats": bs.get("total") or 0,
        "networth": nw.get("total") or 0,
        "updated_at": now,
    }


def run_once() -> Dict[str, Any]:
    """Refresh `user_stats` for every keyed user and log their networth."""
    settings = load_settings()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        users = [u for u in load_credentials(db) if u.has_key]
        if not users:
            logger.info("No users with API keys")
            return {"ok": True, "synced": 0, "failures": 0, "details": []}

        now = iso(utc_now())

        def fetch(user: UserCredential) -> Dict[str, Any]:
            data = torn.user(user.decrypted_key or "", ["profile", "battlestats", "networth"])
            return stats_row(user.user_id, data, now)

        rows: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for outcome in fan_out(fetch, users):
            if outcome.ok:
                rows.append(outcome.value)  # type: ignore[arg-type]
                continue
            logger.warning("User %s: %s", outcome.item.user_id, outcome.error)
            errors.append({"user_id": outcome.item.user_id, "error": str(outcome.error)})

        if rows:
            db.upsert("user_stats", rows, on_conflict="user_id")
            try:
                db.insert(
                    "networth_logs",
                    [{"torn_id": r["user_id"], "total_networth": r["networth"]} for r in rows],
                )
            except SupabaseError as exc:
                logger.error("Failed to log networth history: %s", exc)

    logger.info("Synced %d user(s); %d failure(s)", len(rows), len(errors))
    return {"ok": True, "synced": len(rows), "failures": len(errors), "details": errors}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
