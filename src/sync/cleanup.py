from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict

from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient, lt
from sync.derive import iso, utc_now


RETENTION_DAYS = 7

logger = logging.getLogger(__name__)


def run_once() -> Dict[str, Any]:
    settings = load_settings()
    cutoff = iso(utc_now() - timedelta(days=RETENTION_DAYS))
    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db:
        deleted = db.delete("foreign_stock_history", filters={"recorded_at": lt(cutoff)})
    logger.info("Deleted %d foreign stock history row(s) older than %s", len(deleted), cutoff)
    return {"ok": True, "deleted": len(deleted), "cutoff": cutoff}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
