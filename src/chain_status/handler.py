from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List

from common.concurrency import fan_out
from common.config import load_settings
from common.distributor import Lane, distribute
from common.rate_limiter import SlidingWindowRateLimiter
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError
from common.torn import TornError, TornClient
from state.flags import load_credentials
from state.models import ChainTarget, UserCredential


MAX_TARGETS_PER_RUN = 20
LANE_DELAY_SECONDS = 0.2
UNAVAILABLE_STATES = ("Hospital", "Jail")

logger = logging.getLogger(__name__)

# Swapped out in tests so lanes do not really wait.
_sleep: Callable[[float], None] = time.sleep


def _check_lane(
    lane: Lane[UserCredential, ChainTarget],
    torn: TornClient,
    db: SupabaseClient,
) -> List[Dict[str, Any]]:
    """Check a lane's targets one after another with its own key.

    Returns one result dict per target: `{torn_id, name, status}` or
    `{torn_id, name, error}`.
    """
    pace = SlidingWindowRateLimiter(max_calls=1, per_seconds=LANE_DELAY_SECONDS, sleep=_sleep)
    key = lane.credential.decrypted_key or ""
    results: List[Dict[str, Any]] = []
    for target in lane.items:
        pace.acquire()
        try:
            data = torn.user(key, ["profile"], user_id=target.torn_id)
            status = data.get("status") or {}
            state = status.get("state") or "Unknown"
            until = status.get("until")
            db.rpc(
                "update_chain_target_status",
                {"p_torn_id": target.torn_id, "p_status": state, "p_status_until": until},
            )
        except (TornError, SupabaseError) as exc:
            logger.warning("Chain target %s (%s) failed: %s", target.name, target.torn_id, exc)
            results.append({"torn_id": target.torn_id, "name": target.name, "error": str(exc)})
            continue
        if state in UNAVAILABLE_STATES:
            logger.info("%s is in %s until %s", target.name, state, until)
        results.append({"torn_id": target.torn_id, "name": target.name, "status": state})
    return results


def run_once() -> Dict[str, Any]:
    """
    Refresh the status of one batch of queued chain targets.

    Targets are spread round-robin over every user's key; each key's lane runs
    concurrently with the others, its own calls spaced `LANE_DELAY_SECONDS` apart.
    """
    settings = load_settings()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn:
        raw_targets = db.rpc("get_chain_targets_to_check", {"p_batch_size": MAX_TARGETS_PER_RUN}) or []
        targets = [ChainTarget.model_validate(t) for t in raw_targets][:MAX_TARGETS_PER_RUN]
        if not targets:
            logger.info("No targets to check")
            return {"ok": True, "checked": 0, "hospital": 0, "okay": 0, "errors": 0, "failures": []}

        credentials = [c for c in load_credentials(db) if c.has_key]
        if not credentials:
            raise RuntimeError("No valid API keys available")

        lanes = [lane for lane in distribute(targets, credentials) if lane.items]
        logger.info("Checking %d target(s) across %d key(s)", len(targets), len(lanes))

        outcomes = fan_out(lambda lane: _check_lane(lane, torn, db), lanes)

    checked = hospital = okay = 0
    failures: List[Dict[str, Any]] = []
    for outcome in outcomes:
        if not outcome.ok:
            logger.error("Lane failed: %s", outcome.error)
            failures.extend(
                {"torn_id": t.torn_id, "error": str(outcome.error)} for t in outcome.item.items
            )
            continue
        for result in outcome.value or []:
            if "error" in result:
                failures.append({"torn_id": result["torn_id"], "error": result["error"]})
                continue
            checked += 1
            if result["status"] in UNAVAILABLE_STATES:
                hospital += 1
            else:
                okay += 1

    logger.info("Done: checked=%d hospital=%d okay=%d errors=%d", checked, hospital, okay, len(failures))
    return {
        "ok": True,
        "checked": checked,
        "hospital": hospital,
        "okay": okay,
        "errors": len(failures),
        "failures": failures,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
