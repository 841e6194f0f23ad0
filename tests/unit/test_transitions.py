from __future__ import annotations

import pytest

from common.transitions import StockChange, Transition, classify_stock_change, detect


@pytest.mark.parametrize(
    "previous,condition,expected",
    [
        (False, True, Transition.FIRE),
        (True, True, Transition.NONE),
        (True, False, Transition.CLEAR),
        (False, False, Transition.NONE),
        (False, None, Transition.NONE),
        (True, None, Transition.NONE),
    ],
)
def test_detect(previous, condition, expected):
    assert detect(previous, condition) is expected


def test_flapping_condition_fires_again():
    flag = False
    fired = 0
    for cond in (True, False, True):
        t = detect(flag, cond)
        if t is Transition.FIRE:
            fired += 1
            flag = True
        elif t is Transition.CLEAR:
            flag = False
    assert fired == 2


@pytest.mark.parametrize(
    "current,last,expected",
    [
        (5, 0, StockChange.BACK_IN_STOCK),
        (0, 5, StockChange.OUT_OF_STOCK),
        (40, 60, StockChange.LOW_STOCK),
        (49, 50, StockChange.LOW_STOCK),
        (35, 40, None),
        (0, 0, None),
        (50, 80, None),
        (100, 20, None),
    ],
)
def test_classify_stock_change(current, last, expected):
    assert classify_stock_change(current, last) is expected
