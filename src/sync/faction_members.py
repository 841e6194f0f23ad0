from __future__ import annotations

import logging
from typing import Any, Dict, List

from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError, not_is
from common.torn import TornClient, TornError
from state.flags import load_credentials
from sync.derive import from_unix, iso, utc_now


logger = logging.getLogger(__name__)


def faction_keys(credentials: List[Any], user_factions: Dict[int, int]) -> Dict[int, str]:
    """First usable key per faction, so each faction is fetched once."""
    out: Dict[int, str] = {}
    for cred in credentials:
        faction_id = user_factions.get(cred.user_id)
        if faction_id and cred.has_key and faction_id not in out:
            out[faction_id] = cred.decrypted_key
    return out


def member_rows(faction_id: int, members: Dict[str, Any], now: str) -> List[Dict[str, Any]]:
    rows = []
    for id_str, member in members.items():
        status = member.get("status") or {}
        last_action = (member.get("last_action") or {}).get("timestamp")
        rows.append(
            {
                "member_id": int(id_str),
                "faction_id": faction_id,
                "name": member.get("name"),
                "level": member.get("level"),
                "days_in_faction": member.get("days_in_faction"),
                "position": member.get("position"),
                "status_description": status.get("description"),
                "status_state": status.get("state"),
                "last_action": from_unix(last_action) if last_action else None,
                "updated_at": now,
            }
        )
    return rows


def run_once() -> Dict[str, Any]:
    settings = load_settings()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        credentials = load_credentials(db)
        if not credentials:
            logger.info("No users found")
            return {"ok": True, "results": []}

        user_factions = {
            int(r["id"]): int(r["faction_id"])
            for r in db.select("users", "id,faction_id", filters={"faction_id": not_is(None)})
        }
        keys = faction_keys(credentials, user_factions)

        results: List[Dict[str, Any]] = []
        for faction_id, key in keys.items():
            logger.info("Fetching members for faction %s", faction_id)
            try:
                data = torn.faction(key, ["basic"], faction_id=faction_id)
            except TornError as exc:
                logger.error("Faction %s: %s", faction_id, exc)
                results.append({"faction_id": faction_id, "status": "error", "error": str(exc)})
                continue

            members = data.get("members")
            if not members:
                logger.warning("No members found for faction %s", faction_id)
                results.append({"faction_id": faction_id, "status": "no_members"})
                continue

            rows = member_rows(faction_id, members, iso(utc_now()))
            try:
                db.upsert("faction_members", rows, on_conflict="member_id")
            except SupabaseError as exc:
                logger.error("Upsert for faction %s failed: %s", faction_id, exc)
                results.append({"faction_id": faction_id, "status": "db_error", "error": str(exc)})
                continue
            results.append({"faction_id": faction_id, "status": "success", "count": len(rows)})

    return {"ok": True, "results": results}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
