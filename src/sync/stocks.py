from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from common.config import load_settings
from common.runtime import respond
from common.supabase import SupabaseClient
from common.torn import TornClient
from sync.derive import iso, utc_now


logger = logging.getLogger(__name__)


def build_rows(stocks: Dict[str, Any], now: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    refs: List[Dict[str, Any]] = []
    history: List[Dict[str, Any]] = []
    for id_str, stock in stocks.items():
        stock_id = int(id_str)
        benefit = stock.get("benefit") or {}
        refs.append(
            {
                "stock_id": stock_id,
                "name": stock.get("name"),
                "acronym": stock.get("acronym"),
                "current_price": stock.get("current_price"),
                "market_cap": stock.get("market_cap"),
                "total_shares": stock.get("total_shares"),
                "investors": stock.get("investors"),
                "benefit_type": benefit.get("type"),
                "benefit_frequency": benefit.get("frequency"),
                "benefit_requirement": benefit.get("requirement"),
                "benefit_description": benefit.get("description"),
                "updated_at": now,
            }
        )
        history.append(
            {
                "stock_id": stock_id,
                "price": stock.get("current_price"),
                "market_cap": stock.get("market_cap"),
                "total_shares": stock.get("total_shares"),
                "investors": stock.get("investors"),
                "created_at": now,
            }
        )
    return refs, history


def run_once() -> Dict[str, Any]:
    """Snapshot the stock market: reference rows first, then the history rows that point at them."""
    settings = load_settings()
    torn_key = settings.require_torn_key()

    with TornClient() as torn:
        data = torn.torn(torn_key, ["stocks"])
    refs, history = build_rows(data.get("stocks") or {}, iso(utc_now()))
    logger.info("Prepared %d stock ref(s) and %d history row(s)", len(refs), len(history))

    if refs:
        with SupabaseClient(settings.supabase_url, settings.supabase_key) as db:
            db.upsert("stocks_ref", refs, on_conflict="stock_id")
            db.insert("stock_history", history)

    return {"ok": True, "updated_refs": len(refs), "inserted_history": len(history)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
