from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from common.alerts import ALERT_CHANNEL_ID, TEST_BODY, TEST_TITLE, format_arrived, format_landing_soon
from common.concurrency import fan_out
from common.config import load_settings
from common.push import ExpoPushClient, dispatch
from common.runtime import respond
from common.supabase import SupabaseClient, SupabaseError
from common.torn import TornApiError, TornClient, UserSnapshot
from common.transitions import Transition
from state.flags import FlagStore, OptimisticLockError, TravelCacheStore, load_credentials
from state.models import NotificationMessage, TravelCache, UserCredential, UserStatusFlags
from status_watcher.rules import (
    HOME,
    TRAVEL_SKIP_API_THRESHOLD_SECONDS,
    TRAVEL_SOON_THRESHOLD_SECONDS,
    evaluate,
    travel_state,
)


logger = logging.getLogger(__name__)


def _now() -> int:
    return int(time.time())


class _Run:
    """Per-invocation bookkeeping: the outbox, the error list and the flag writes."""

    def __init__(self, store: FlagStore) -> None:
        self.store = store
        self.outbox: List[NotificationMessage] = []
        self.errors: List[Dict[str, Any]] = []

    def notify(self, user: UserCredential, flags: UserStatusFlags, flag: str, title: str, body: str) -> bool:
        """Flip `flag` to true, then queue the message. The write goes first so a
        failed or lost write never produces a notification."""
        try:
            self.store.set_flag(user.user_id, flag, True, expected=False)
        except OptimisticLockError:
            logger.info("User %s: %s already set by another run", user.user_id, flag)
            setattr(flags, flag, True)
            return False
        except SupabaseError as exc:
            logger.error("User %s: failed to set %s: %s", user.user_id, flag, exc)
            self.errors.append({"user_id": user.user_id, "error": f"set {flag}: {exc}"})
            return False

        setattr(flags, flag, True)
        self.outbox.append(
            NotificationMessage(
                push_token=user.push_token or "",
                title=title,
                body=body,
                channel_id=ALERT_CHANNEL_ID,
            )
        )
        logger.info("User %s: queued %r", user.user_id, title)
        return True

    def reset(self, user: UserCredential, flags: UserStatusFlags, flag: str) -> None:
        if not flags.get_flag(flag):
            return
        try:
            self.store.set_flag(user.user_id, flag, False, expected=True)
        except OptimisticLockError:
            logger.info("User %s: %s already cleared by another run", user.user_id, flag)
        except SupabaseError as exc:
            logger.error("User %s: failed to reset %s: %s", user.user_id, flag, exc)
            self.errors.append({"user_id": user.user_id, "error": f"reset {flag}: {exc}"})
            return
        setattr(flags, flag, False)
        logger.debug("User %s: reset %s", user.user_id, flag)


def _check_cached_travel(run: _Run, user: UserCredential, flags: UserStatusFlags, cached: Optional[TravelCache], now: int) -> int:
    """Travel notifications answerable from the cache alone. Returns seconds left in flight."""
    if cached is None:
        return 0
    left = cached.time_left(now)
    destination = cached.travel_destination or "Unknown"
    if left > 0:
        if left <= TRAVEL_SOON_THRESHOLD_SECONDS and not flags.travel_soon:
            run.notify(user, flags, "travel_soon", "🛬 Landing soon", format_landing_soon(left, destination))
    elif (
        cached.travel_destination
        and cached.travel_destination != HOME
        and cached.travel_state == "Traveling"
        and not flags.travel_landed
    ):
        run.notify(user, flags, "travel_landed", "✈️ Arrived!", format_arrived(cached.travel_destination))
    return left


def _send_test_if_requested(run: _Run, user: UserCredential, flags: UserStatusFlags) -> None:
    if not flags.test_notif:
        return
    try:
        run.store.set_flag(user.user_id, "test_notif", False, expected=True)
    except (OptimisticLockError, SupabaseError) as exc:
        logger.error("User %s: failed to reset test_notif: %s", user.user_id, exc)
        return
    flags.test_notif = False
    run.outbox.append(
        NotificationMessage(push_token=user.push_token or "", title=TEST_TITLE, body=TEST_BODY, channel_id=ALERT_CHANNEL_ID)
    )


def _apply_snapshot(run: _Run, user: UserCredential, flags: UserStatusFlags, snapshot: UserSnapshot) -> None:
    for rule, transition in evaluate(flags, snapshot):
        if transition is Transition.FIRE:
            run.notify(user, flags, rule.flag, rule.title, rule.body(snapshot))
        elif transition is Transition.CLEAR:
            run.reset(user, flags, rule.flag)


def _sync_travel_cache(cache_store: TravelCacheStore, user: UserCredential, snapshot: UserSnapshot, now: int) -> None:
    if snapshot.travel is None:
        logger.debug("User %s: no travel section, cache left as is", user.user_id)
        return
    left = snapshot.travel.time_left
    destination = snapshot.travel.destination
    try:
        cache_store.save(
            user.user_id,
            travel_state=travel_state(snapshot),
            travel_destination=destination or None,
            travel_arrival=now + left if left > 0 else None,
            status_state=snapshot.status.state if snapshot.status else None,
            status_until=snapshot.status.until if snapshot.status else None,
        )
    except SupabaseError as exc:
        logger.error("User %s: travel cache sync failed: %s", user.user_id, exc)


def run_once() -> Dict[str, Any]:
    """
    Check every user's bars, cooldowns, travel, education and chain once.

    - Reads credentials (`get_decrypted_users`), flags and the travel cache.
    - Users still more than 3 minutes from landing are answered from the cache
      and skip the API call.
    - Fetches the rest concurrently, fires on false->true, clears on true->false.
    - Sends every queued notification in a single batch.
    """
    settings = load_settings()
    now = _now()

    with SupabaseClient(settings.supabase_url, settings.supabase_key) as db, TornClient() as torn, ExpoPushClient() as push:
        users = load_credentials(db)
        if not users:
            logger.info("No users found")
            return {"ok": True, "users": 0, "notifications": 0, "delivered": 0, "api_calls": 0, "skipped": 0, "errors": []}
        logger.info("Checking %d user(s)", len(users))

        store = FlagStore(db)
        cache_store = TravelCacheStore(db)
        ids = [u.user_id for u in users]
        flags_by_user = store.load(ids)
        try:
            travel_by_user = cache_store.load(ids)
        except SupabaseError as exc:
            logger.error("Travel cache unavailable, continuing without it: %s", exc)
            travel_by_user = {}

        run = _Run(store)
        pending: List[UserCredential] = []
        skipped = 0

        for user in users:
            try:
                if not user.has_key:
                    logger.info("User %s has no API key", user.user_id)
                    continue
                if not user.push_token:
                    logger.info("User %s has no push token", user.user_id)
                    continue

                flags = flags_by_user.get(user.user_id)
                if flags is None:
                    # Picked up on the next run once the row exists.
                    logger.info("User %s has no notification row; creating", user.user_id)
                    try:
                        store.create(user.user_id)
                    except SupabaseError as exc:
                        logger.error("User %s: failed to create notification row: %s", user.user_id, exc)
                        run.errors.append({"user_id": user.user_id, "error": str(exc)})
                    continue

                left = _check_cached_travel(run, user, flags, travel_by_user.get(user.user_id), now)
                _send_test_if_requested(run, user, flags)

                if left > TRAVEL_SKIP_API_THRESHOLD_SECONDS:
                    logger.debug("User %s in flight (%ss left); skipping API call", user.user_id, left)
                    skipped += 1
                    continue
                pending.append(user)
            except Exception as exc:
                logger.exception("User %s failed: %s", user.user_id, exc)
                run.errors.append({"user_id": user.user_id, "error": str(exc)})

        outcomes = fan_out(lambda u: torn.user_snapshot(u.decrypted_key or ""), pending)

        for outcome in outcomes:
            user = outcome.item
            if not outcome.ok:
                if isinstance(outcome.error, TornApiError):
                    logger.warning("Torn API error for user %s: %s", user.user_id, outcome.error)
                else:
                    logger.error("Fetch failed for user %s: %s", user.user_id, outcome.error)
                run.errors.append({"user_id": user.user_id, "error": str(outcome.error)})
                continue
            try:
                snapshot: UserSnapshot = outcome.value  # type: ignore[assignment]
                _apply_snapshot(run, user, flags_by_user[user.user_id], snapshot)
                _sync_travel_cache(cache_store, user, snapshot, now)
            except Exception as exc:
                logger.exception("User %s failed: %s", user.user_id, exc)
                run.errors.append({"user_id": user.user_id, "error": str(exc)})

        delivered = dispatch(push, run.outbox)

    logger.info(
        "Done: notifications=%d delivered=%d api_calls=%d skipped=%d errors=%d",
        len(run.outbox), delivered, len(pending), skipped, len(run.errors),
    )
    return {
        "ok": True,
        "users": len(users),
        "notifications": len(run.outbox),
        "delivered": delivered,
        "api_calls": len(pending),
        "skipped": skipped,
        "errors": run.errors,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return respond(run_once)
