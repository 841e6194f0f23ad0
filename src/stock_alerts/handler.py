from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from common.alerts import STOCK_ALERT_TITLE, StockAlertContext, format_stock_alert
from common.config import load_settings
from common.push import ExpoPushClient, dispatch
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError, in_, not_is
from common.transitions import classify_stock_change
from state.flags import FlagStore, TravelCacheStore
from state.models import NotificationMessage, StockAlert


logger = logging.getLogger(__name__)

COUNTRY_NAME_TO_CODE: Dict[str, str] = {
    "Argentina": "arg",
    "Canada": "can",
    "Cayman Islands": "cay",
    "China": "chi",
    "Hawaii": "haw",
    "Japan": "jap",
    "Mexico": "mex",
    "South Africa": "sou",
    "Switzerland": "swi",
    "UAE": "uae",
    "United Arab Emirates": "uae",
    "United Kingdom": "uni",
    "UK": "uni",
}


def check_alerts(
    alerts: List[StockAlert],
    *,
    country_code: str,
    destination: str,
    quantities: Dict[Tuple[int, str], int],
    item_names: Dict[int, str],
) -> Tuple[List[StockAlert], List[str]]:
    """Compare the user's alerts for `country_code` against current quantities.

    Returns the full alert list with `last_qty` refreshed for every checked
    alert (whether or not it produced a message) and the message bodies.
    """
    updated: List[StockAlert] = []
    messages: List[str] = []
    for alert in alerts:
        if alert.country_code != country_code:
            updated.append(alert)
            continue
        current = quantities.get((alert.item_id, alert.country_code), 0)
        change = classify_stock_change(current, alert.last_qty)
        if change is not None:
            messages.append(
                format_stock_alert(
                    StockAlertContext(
                        item_name=item_names.get(alert.item_id) or f"Item #{alert.item_id}",
                        destination=destination,
                        quantity=current,
                        change=change,
                    )
                )
            )
        updated.append(alert.model_copy(update={"last_qty": current}))
    return updated, messages


def _destination_code(destination: Optional[str]) -> Optional[str]:
    if not destination:
        return None
    return COUNTRY_NAME_TO_CODE.get(destination)


def run_once() -> Dict[str, Any]:
    """Notify travellers about stock changes at their destination."""
    settings = load_settings()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, ExpoPushClient() as push:
        store = FlagStore(db)
        watchers = store.load_with_stock_alerts()
        if not watchers:
            logger.info("No users with stock alerts")
            return {"ok": True, "checked": 0, "alerts_sent": 0, "errors": []}
        logger.info("Found %d user(s) with stock alerts", len(watchers))

        user_ids = [w.user_id for w in watchers]
        travel = TravelCacheStore(db).load(user_ids)

        quantities = {
            (int(r["item_id"]), str(r["country_code"])): int(r.get("quantity") or 0)
            for r in db.select("item_foreign_stocks", "item_id,country_code,quantity")
        }

        item_ids = sorted({a.item_id for w in watchers for a in w.stock_alerts})
        item_names = {
            int(r["id"]): str(r.get("name") or "")
            for r in db.select("items", "id,name", filters={"id": in_(item_ids)})
        }
        tokens = {
            int(r["id"]): str(r["push_token"])
            for r in db.select(
                "users",
                "id,push_token",
                filters={"id": in_(user_ids), "push_token": not_is(None)},
            )
        }

        outbox: List[NotificationMessage] = []
        errors: List[Dict[str, Any]] = []
        for watcher in watchers:
            cached = travel.get(watcher.user_id)
            token = tokens.get(watcher.user_id)
            if cached is None or not cached.travel_destination or not token:
                continue
            code = _destination_code(cached.travel_destination)
            if code is None:
                logger.info("Unknown destination %r for user %s", cached.travel_destination, watcher.user_id)
                continue
            if not any(a.country_code == code for a in watcher.stock_alerts):
                continue

            updated, bodies = check_alerts(
                watcher.stock_alerts,
                country_code=code,
                destination=cached.travel_destination,
                quantities=quantities,
                item_names=item_names,
            )
            for body in bodies:
                logger.info("User %s: %s", watcher.user_id, body)
                outbox.append(NotificationMessage(push_token=token, title=STOCK_ALERT_TITLE, body=body))
            try:
                store.save_stock_alerts(watcher.user_id, updated)
            except SupabaseError as exc:
                logger.error("User %s: failed to save stock alerts: %s", watcher.user_id, exc)
                errors.append({"user_id": watcher.user_id, "error": str(exc)})

        sent = dispatch(push, outbox)

    logger.info("Stock alert check complete: %d alert(s) sent", sent)
    return {"ok": True, "checked": len(watchers), "alerts_sent": sent, "errors": errors}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
