from __future__ import annotations

import logging
from typing import Any, Dict

from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError
from common.torn import TornClient, TornError
from state.flags import load_credentials


logger = logging.getLogger(__name__)


def run_once() -> Dict[str, Any]:
    """Daily networth sample per user from `personalstats`."""
    settings = load_settings()
    logged = failed = 0

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        users = [u for u in load_credentials(db) if u.has_key]
        logger.info("Recording networth for %d user(s)", len(users))
        for user in users:
            try:
                data = torn.user(user.decrypted_key or "", ["personalstats"])
                networth = (data.get("personalstats") or {}).get("networth")
                if not networth:
                    continue
                db.insert("networth_logs", {"torn_id": user.user_id, "total_networth": networth})
            except (TornError, SupabaseError) as exc:
                logger.error("User %s: %s", user.user_id, exc)
                failed += 1
                continue
            logged += 1

    return {"ok": True, "logged": logged, "failures": failed}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
