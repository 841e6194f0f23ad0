from __future__ import annotations

from enum import Enum
from typing import Optional


LOW_STOCK_THRESHOLD = 50


class Transition(str, Enum):
    FIRE = "fire"  # newly met: notify, set flag
    CLEAR = "clear"  # no longer met: clear flag silently
    NONE = "none"


class StockChange(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    BACK_IN_STOCK = "back_in_stock"
    LOW_STOCK = "low_stock"


def detect(previous: bool, condition: Optional[bool]) -> Transition:
    """Decide what a fresh observation means for a persisted flag.

    `condition=None` means the observation cannot decide either way (data
    missing, or a state the rule has no reset for) and never changes the flag.
    There is no hysteresis: a condition that drops and comes back fires again.
    """
    if condition is None:
        return Transition.NONE
    if condition and not previous:
        return Transition.FIRE
    if not condition and previous:
        return Transition.CLEAR
    return Transition.NONE


def classify_stock_change(current: int, last: int) -> Optional[StockChange]:
    if current == 0 and last > 0:
        return StockChange.OUT_OF_STOCK
    if current > 0 and last == 0:
        return StockChange.BACK_IN_STOCK
    if 0 < current < LOW_STOCK_THRESHOLD and last >= LOW_STOCK_THRESHOLD:
        return StockChange.LOW_STOCK
    return None


__all__ = [
    "LOW_STOCK_THRESHOLD",
    "StockChange",
    "Transition",
    "classify_stock_change",
    "detect",
]
