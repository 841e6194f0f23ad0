from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

import httpx

from common.concurrency import fan_out
from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError, eq
from common.torn import TornClient
from sync.derive import chunked, from_unix, iso, percent_change, utc_now


YATA_EXPORT_URL = "https://yata.yt/api/v1/travel/export/"
UPSERT_CHUNK = 500

COUNTRY_NAMES: Dict[str, str] = {
    "mex": "Mexico",
    "cay": "Cayman Islands",
    "can": "Canada",
    "haw": "Hawaii",
    "uni": "United Kingdom",
    "arg": "Argentina",
    "swi": "Switzerland",
    "jap": "Japan",
    "chi": "China",
    "uae": "UAE",
    "sou": "South Africa",
}

logger = logging.getLogger(__name__)


def _fetch_yata(timeout: float = 15.0) -> Dict[str, Any]:
    resp = httpx.get(YATA_EXPORT_URL, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def build_item_rows(catalogue: Dict[str, Any], previous_prices: Dict[int, int], now: str) -> List[Dict[str, Any]]:
    """Rows for the hot items only; `previous_prices` doubles as the hot-item set."""
    rows: List[Dict[str, Any]] = []
    for id_str, item in catalogue.items():
        item_id = int(id_str)
        if item_id not in previous_prices:
            continue
        current = item.get("market_value") or 0
        last = previous_prices.get(item_id) or None
        rows.append(
            {
                "id": item_id,
                "name": item.get("name"),
                "description": item.get("description"),
                "type": item.get("type"),
                "weapon_type": item.get("weapon_type"),
                "buy_price": item.get("buy_price") or 0,
                "sell_price": item.get("sell_price") or 0,
                "market_value": current,
                "circulation": item.get("circulation") or 0,
                "image_url": item.get("image"),
                "damage": item.get("damage") or 0,
                "accuracy": item.get("accuracy") or 0,
                "fire_rate": item.get("rate_of_fire") or 0,
                "effect": item.get("effect"),
                "requirement": item.get("requirement"),
                "coverage": json.dumps(item["coverage"]) if item.get("coverage") else None,
                "current_price": current,
                "last_price": last,
                "price_change_percent": percent_change(last, current),
                "updated_at": now,
            }
        )
    return rows


def build_foreign_stock_rows(export: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for code, country in (export.get("stocks") or {}).items():
        stocks = country.get("stocks") if isinstance(country, dict) else None
        if not isinstance(stocks, list):
            continue
        updated_at = from_unix(country.get("update") or 0)
        for stock in stocks:
            rows.append(
                {
                    "item_id": stock["id"],
                    "country_code": code,
                    "country_name": COUNTRY_NAMES.get(code, code.upper()),
                    "quantity": stock.get("quantity") or 0,
                    "price": stock.get("cost") or 0,
                    "updated_at": updated_at,
                }
            )
    return rows


def _upsert_chunks(db: SupabaseClient, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> int:
    saved = 0
    for i, chunk in enumerate(chunked(rows, UPSERT_CHUNK)):
        try:
            db.upsert(table, chunk, on_conflict=on_conflict)
        except SupabaseError as exc:
            logger.error("%s chunk %d failed: %s", table, i, exc)
            continue
        saved += len(chunk)
    return saved


def run_once() -> Dict[str, Any]:
    """Refresh hot items from the Torn catalogue and foreign stock from YATA."""
    settings = load_settings()
    torn_key = settings.require_torn_key()

    with TornClient() as torn, SupabaseClient(settings.supabase_url, settings.supabase_key) as db:
        torn_out, yata_out = fan_out(
            lambda fetch: fetch(),
            [lambda: torn.torn(torn_key, ["items"]), _fetch_yata],
        )
        if not torn_out.ok:
            raise torn_out.error  # type: ignore[misc]
        catalogue: Dict[str, Any] = (torn_out.value or {}).get("items") or {}
        logger.info("Torn catalogue has %d item(s)", len(catalogue))

        hot = db.select("items", "id,current_price", filters={"is_hot_item": eq(True)})
        if not hot:
            logger.info("No hot items flagged; nothing to sync")
            return {"ok": True, "items": 0, "foreign_stocks": 0, "note": "No hot items"}
        previous = {int(r["id"]): int(r.get("current_price") or 0) for r in hot}

        now = iso(utc_now())
        items_saved = _upsert_chunks(db, "items", build_item_rows(catalogue, previous, now), "id")

        stocks_saved = 0
        if yata_out.ok:
            stock_rows = build_foreign_stock_rows(yata_out.value or {})
            logger.info("YATA export has %d foreign stock entries", len(stock_rows))
            stocks_saved = _upsert_chunks(db, "item_foreign_stocks", stock_rows, "item_id,country_code")
        else:
            logger.error("YATA export failed: %s", yata_out.error)

    return {"ok": True, "items": items_saved, "foreign_stocks": stocks_saved, "updated_at": now}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
