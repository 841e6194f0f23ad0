from __future__ import annotations

import logging
from typing import Any, Dict

from common.alerts import WAR_CHAIN_TITLE, format_war_chain_warning
from common.config import load_settings
from common.push import ExpoPushClient, dispatch
from common.runtime import respond
from common.supabase import SupabaseClient, eq, not_is
from common.torn import Chain, TornClient
from state.models import NotificationMessage


MIN_CHAIN_LENGTH = 10
DANGER_TIMEOUT_SECONDS = 90

logger = logging.getLogger(__name__)


def chain_in_danger(chain: Chain) -> bool:
    return chain.current > MIN_CHAIN_LENGTH and chain.timeout < DANGER_TIMEOUT_SECONDS


def run_once() -> Dict[str, Any]:
    """Broadcast a chain warning to the whole faction when the chain is about to drop.

    A Torn error here aborts the run (the handler answers 400).
    """
    settings = load_settings()
    torn_key = settings.require_torn_key()
    faction_id = settings.require_faction_id()

    with TornClient() as torn:
        data = torn.faction(torn_key, ["chain"], faction_id=faction_id)
    chain = Chain.model_validate(data.get("chain") or {})

    if not chain_in_danger(chain):
        logger.info("Chain safe: current=%d timeout=%d", chain.current, chain.timeout)
        return {"ok": True, "status": "No Alert Needed", "count": 0}

    logger.warning("Chain at %d with %ds left", chain.current, chain.timeout)
    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, ExpoPushClient() as push:
        members = db.select(
            "users",
            "push_token",
            filters={"faction_id": eq(faction_id), "push_token": not_is(None)},
        )
        messages = [
            NotificationMessage(
                push_token=str(m["push_token"]),
                title=WAR_CHAIN_TITLE,
                body=format_war_chain_warning(chain.timeout),
            )
            for m in members
            if m.get("push_token")
        ]
        sent = dispatch(push, messages)

    return {"ok": True, "status": "Alert Sent!" if messages else "No Recipients", "count": sent}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
