from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from common.config import load_settings
from common.rate_limiter import SlidingWindowRateLimiter
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError, eq
from common.torn import TornClient, TornError
from state.flags import load_credentials
from sync.derive import iso, parse_iso, utc_now


STAGGER_GROUPS = 6
CALL_SPACING_SECONDS = 0.7
MONDAY = 0

logger = logging.getLogger(__name__)

_sleep: Callable[[float], None] = time.sleep


def _now() -> datetime:
    return utc_now()


def scheduled(member_id: int, hour: int) -> bool:
    """Each member is visited once every six hours, one sixth of the roster per hour."""
    return member_id % STAGGER_GROUPS == hour % STAGGER_GROUPS


def weekly_usage(now: datetime, xantaken: int, last: Optional[Dict[str, Any]]) -> int:
    """
    Xanax taken this week, carried forward from the previous history row.

    The count restarts on the first Monday sample: the previous row was taken
    on another weekday, or is at least six days old.
    """
    if not last:
        return 0
    taken = max(0, xantaken - int(last.get("xantaken_total") or 0))
    last_at = parse_iso(str(last["recorded_at"]))
    day_diff = (now - last_at).days
    new_week = now.weekday() == MONDAY and (last_at.weekday() != MONDAY or day_diff >= 6)
    if new_week:
        return taken
    return int(last.get("xanax_weekly_usage") or 0) + taken


def run_once() -> Dict[str, Any]:
    settings = load_settings()
    now = _now()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        key = next((c.decrypted_key for c in load_credentials(db) if c.has_key), None)
        if not key:
            raise RuntimeError("No valid API key found available")

        members = db.select("faction_members", "member_id")
        due = [int(m["member_id"]) for m in members if scheduled(int(m["member_id"]), now.hour)]
        logger.info(
            "Processing %d of %d member(s) (hour %d, group %d)",
            len(due),
            len(members),
            now.hour,
            now.hour % STAGGER_GROUPS,
        )
        if not due:
            return {"ok": True, "processed": 0, "results": []}

        pace = SlidingWindowRateLimiter(max_calls=1, per_seconds=CALL_SPACING_SECONDS, sleep=_sleep)
        results: List[Dict[str, Any]] = []
        for member_id in due:
            pace.acquire()
            try:
                data = torn.user(key, ["personalstats"], user_id=member_id)
                xantaken = int((data.get("personalstats") or {}).get("xantaken") or 0)
                previous = db.select(
                    "member_stats_history",
                    filters={"member_id": eq(member_id)},
                    order="recorded_at.desc",
                    limit=1,
                )
                usage = weekly_usage(now, xantaken, previous[0] if previous else None)
                db.insert(
                    "member_stats_history",
                    {
                        "member_id": member_id,
                        "xantaken_total": xantaken,
                        "xanax_weekly_usage": usage,
                        "recorded_at": iso(now),
                    },
                )
            except (TornError, SupabaseError) as exc:
                logger.error("Member %s: %s", member_id, exc)
                results.append({"member_id": member_id, "status": "error", "error": str(exc)})
                continue
            results.append({"member_id": member_id, "status": "success", "weekly_usage": usage})

    return {"ok": True, "processed": len(due), "results": results}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
