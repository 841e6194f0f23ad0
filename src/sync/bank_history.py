from __future__ import annotations

import logging
from typing import Any, Dict, List

from common.concurrency import fan_out
from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient
from common.torn import TornClient
from state.flags import load_credentials
from state.models import UserCredential
from sync.derive import from_unix


# City bank deposit/withdraw and offshore (Cayman) bank entries.
BANK_LOG_TYPES = (5450, 5451, 6010, 6011, 6012)

logger = logging.getLogger(__name__)


def log_rows(user_id: int, logs: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for log_hash, entry in logs.items():
        data = entry.get("data") or {}
        worth = data.get("worth")
        rows.append(
            {
                "log_hash": log_hash,
                "user_id": user_id,
                "log_type": entry.get("log"),
                "category": entry.get("category"),
                "title": entry.get("title"),
                "transaction_time": from_unix(entry.get("timestamp") or 0),
                "amount": int(data.get("amount") or 0),
                "invest_worth": int(worth) if worth else None,
                "invest_duration": data.get("duration") or None,
                "invest_percent": data.get("percent") or None,
            }
        )
    return rows


def run_once() -> Dict[str, Any]:
    settings = load_settings()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        users = [u for u in load_credentials(db) if u.has_key]
        if not users:
            logger.info("No users with API keys")
            return {"ok": True, "synced_records": 0, "failures": 0, "details": []}
        logger.info("Syncing bank logs for %d user(s)", len(users))

        def fetch(user: UserCredential) -> List[Dict[str, Any]]:
            data = torn.user(
                user.decrypted_key or "",
                ["log"],
                log=",".join(str(t) for t in BANK_LOG_TYPES),
            )
            return log_rows(user.user_id, data.get("log") or {})

        records: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for outcome in fan_out(fetch, users):
            if not outcome.ok:
                logger.warning("User %s: %s", outcome.item.user_id, outcome.error)
                errors.append({"user_id": outcome.item.user_id, "error": str(outcome.error)})
                continue
            records.extend(outcome.value or [])

        if records:
            db.upsert("bank_logs", records, on_conflict="log_hash")

    logger.info("Synced %d bank log record(s); %d failure(s)", len(records), len(errors))
    return {"ok": True, "synced_records": len(records), "failures": len(errors), "details": errors}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
