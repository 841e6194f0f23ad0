from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from common.alerts import format_arrived, format_chain_pace, format_landing_soon
from common.torn import UserSnapshot
from common.transitions import Transition, detect
from state.models import UserStatusFlags


TRAVEL_SOON_THRESHOLD_SECONDS = 120
TRAVEL_SKIP_API_THRESHOLD_SECONDS = 180
CHAIN_TIMEOUT_WARNING_SECONDS = 90
HOME = "Torn"


@dataclass(frozen=True)
class WatchRule:
    """One persisted flag, the condition behind it, and the message it sends."""

    flag: str
    title: str
    condition: Callable[[UserSnapshot], Optional[bool]]
    body: Callable[[UserSnapshot], str]


def _bar_full(name: str) -> Callable[[UserSnapshot], Optional[bool]]:
    def check(s: UserSnapshot) -> Optional[bool]:
        bar = getattr(s, name)
        if bar is None:
            return None
        return bar.current >= bar.maximum

    return check


def _cooldown_over(name: str) -> Callable[[UserSnapshot], Optional[bool]]:
    def check(s: UserSnapshot) -> Optional[bool]:
        if s.cooldowns is None:
            return None
        return getattr(s.cooldowns, name) == 0

    return check


def _landing_soon(s: UserSnapshot) -> Optional[bool]:
    if s.travel is None:
        return None
    return 0 < s.travel.time_left <= TRAVEL_SOON_THRESHOLD_SECONDS


def _landed_abroad(s: UserSnapshot) -> Optional[bool]:
    if s.travel is None:
        return None
    if s.travel.time_left > 0:
        return False
    if s.travel.destination != HOME:
        return True
    # Home and not flying: nothing to announce, nothing to reset.
    return None


def _education_done(s: UserSnapshot) -> Optional[bool]:
    if s.education_time_left is None:
        return None
    return s.education_time_left == 0


def _chain_at_risk(s: UserSnapshot) -> Optional[bool]:
    if s.chain is None:
        return None
    return s.chain.current > 0 and s.chain.timeout <= CHAIN_TIMEOUT_WARNING_SECONDS


def _static(text: str) -> Callable[[UserSnapshot], str]:
    return lambda _s: text


def _travel_left(s: UserSnapshot) -> int:
    return s.travel.time_left if s.travel else 0


def _travel_destination(s: UserSnapshot) -> str:
    return s.travel.destination if s.travel else "Unknown"


WATCH_RULES: Tuple[WatchRule, ...] = (
    WatchRule(
        "energy_full",
        "⚡ Energy Full",
        _bar_full("energy"),
        _static("Your energy is capped right now. Go train or hit before the regen gets wasted."),
    ),
    WatchRule(
        "nerve_full",
        "🧠 Nerve Full",
        _bar_full("nerve"),
        _static("Nerve is maxed out. Perfect time to run a bunch of crimes and cash in the regen."),
    ),
    WatchRule(
        "happy_full",
        "😊 Happy Full",
        _bar_full("happy"),
        _static("Happy is topped up. If you've been waiting to train, make it count."),
    ),
    WatchRule(
        "life_full",
        "❤️ Life Full",
        _bar_full("life"),
        _static("You're back at full health, good to go."),
    ),
    WatchRule(
        "travel_soon",
        "🛬 Landing soon",
        _landing_soon,
        lambda s: format_landing_soon(_travel_left(s), _travel_destination(s)),
    ),
    WatchRule(
        "travel_landed",
        "✈️ Arrived!",
        _landed_abroad,
        lambda s: format_arrived(_travel_destination(s)),
    ),
    WatchRule(
        "drugs_ready",
        "💊 Drug Ready",
        _cooldown_over("drug"),
        _static("Drug cooldown is over. Your next dose is available whenever you're ready."),
    ),
    WatchRule(
        "booster_ready",
        "🍬 Booster Ready",
        _cooldown_over("booster"),
        _static("Booster cooldown is done. You can use one again."),
    ),
    WatchRule(
        "medical_out",
        "🏥 Out of Medical",
        _cooldown_over("medical"),
        _static("Medical cooldown is over. Get back into the action."),
    ),
    WatchRule(
        "jail_free",
        "🚓 Out of Jail",
        _cooldown_over("jail"),
        _static("You're free again. Maybe keep a low profile for a bit."),
    ),
    WatchRule(
        "edu_complete",
        "🎓 Class Finished",
        _education_done,
        _static("Your education course just finished. Enroll in the next one to keep progressing."),
    ),
    WatchRule(
        "chain_warning",
        "🔗 CHAIN ALERT",
        _chain_at_risk,
        lambda s: format_chain_pace(s.chain.timeout if s.chain else 0),
    ),
)


def evaluate(flags: UserStatusFlags, snapshot: UserSnapshot) -> List[Tuple[WatchRule, Transition]]:
    """Rules whose flag should change, in rule order; NONE outcomes are dropped."""
    out: List[Tuple[WatchRule, Transition]] = []
    for rule in WATCH_RULES:
        transition = detect(flags.get_flag(rule.flag), rule.condition(snapshot))
        if transition is not Transition.NONE:
            out.append((rule, transition))
    return out


def travel_state(snapshot: UserSnapshot) -> str:
    if snapshot.travel is None:
        return "Okay"
    if snapshot.travel.time_left > 0:
        return "Traveling"
    if snapshot.travel.destination != HOME:
        return "Abroad"
    return "Okay"


__all__ = [
    "HOME",
    "TRAVEL_SKIP_API_THRESHOLD_SECONDS",
    "TRAVEL_SOON_THRESHOLD_SECONDS",
    "WATCH_RULES",
    "WatchRule",
    "evaluate",
    "travel_state",
]
