from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List

from common.config import load_settings
from common.rate_limiter import SlidingWindowRateLimiter
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError, eq
from common.torn import TornClient, TornError
from sync.derive import iso, lowest_price, percent_change, utc_now


BATCH_SIZE = 50
CALL_SPACING_SECONDS = 0.1

logger = logging.getLogger(__name__)

_sleep: Callable[[float], None] = time.sleep


def price_update(item: Dict[str, Any], listings: List[Dict[str, Any]], now: str) -> Dict[str, Any]:
    """Column values for one item given its market listings.

    With no listings the stored price is kept and the change is 0.
    """
    old = int(item.get("current_price") or 0)
    lowest = lowest_price(listings)
    if lowest is None:
        return {
            "lowest_bazaar_price": 0,
            "current_price": old,
            "last_price": old,
            "price_change_percent": 0,
            "last_bazaar_sync": now,
        }
    return {
        "lowest_bazaar_price": lowest,
        "current_price": lowest,
        "last_price": old,
        "price_change_percent": percent_change(old, lowest),
        "last_bazaar_sync": now,
    }


def run_once() -> Dict[str, Any]:
    settings = load_settings()
    torn_key = settings.require_torn_key()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        items = db.select(
            "items",
            "id,name,current_price,is_hot_item",
            order="is_hot_item.desc,last_bazaar_sync.asc.nullsfirst",
            limit=BATCH_SIZE,
        )
        if not items:
            logger.info("No items to sync")
            return {"ok": True, "synced": 0, "price_changes": 0, "hot_items": 0, "processed": 0}

        hot = sum(1 for i in items if i.get("is_hot_item"))
        logger.info("Processing %d item(s) (%d hot)", len(items), hot)

        pace = SlidingWindowRateLimiter(max_calls=1, per_seconds=CALL_SPACING_SECONDS, sleep=_sleep)
        synced = changes = saved = 0
        for item in items:
            pace.acquire()
            try:
                data = torn.item_market(torn_key, int(item["id"]))
            except TornError as exc:
                logger.error("Market lookup for %s failed: %s", item.get("name"), exc)
                continue

            listings = (data.get("itemmarket") or {}).get("listings") or []
            update = price_update(item, listings, iso(utc_now()))
            if listings:
                synced += 1
                if update["price_change_percent"]:
                    changes += 1
                    logger.info(
                        "%s: %d -> %d (%+.2f%%)",
                        item.get("name"),
                        update["last_price"],
                        update["current_price"],
                        update["price_change_percent"],
                    )
            try:
                db.update("items", update, filters={"id": eq(item["id"])})
            except SupabaseError as exc:
                logger.error("Update for item %s failed: %s", item["id"], exc)
                continue
            saved += 1

    logger.info("Synced %d/%d item(s), %d price change(s), %d row(s) saved", synced, len(items), changes, saved)
    return {"ok": True, "synced": synced, "price_changes": changes, "hot_items": hot, "processed": len(items)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
