from __future__ import annotations

from dataclasses import dataclass

from .transitions import StockChange


ALERT_CHANNEL_ID = "torn-sentinel-alerts"

STOCK_ALERT_TITLE = "📦 Foreign Stock Alert"
TEST_TITLE = "🔔 Test Notification"
TEST_BODY = "Push notifications are working!"
WAR_CHAIN_TITLE = "🚨 CHAIN WARNING!"


@dataclass(frozen=True)
class StockAlertContext:
    """Context for formatting a foreign stock alert.

    Attributes
    - item_name: display name, or "Item #<id>" when the catalogue lacks it
    - destination: country the user is flying to
    - quantity: current quantity on the shelf
    - change: which transition happened
    """

    item_name: str
    destination: str
    quantity: int
    change: StockChange


def format_stock_alert(ctx: StockAlertContext) -> str:
    if ctx.change is StockChange.OUT_OF_STOCK:
        return f"❌ {ctx.item_name} is OUT OF STOCK in {ctx.destination}!"
    if ctx.change is StockChange.BACK_IN_STOCK:
        return f"✅ {ctx.item_name} is BACK IN STOCK (x{ctx.quantity}) in {ctx.destination}!"
    return f"⚠️ {ctx.item_name} is LOW STOCK (x{ctx.quantity}) in {ctx.destination}!"


def format_war_chain_warning(timeout: int) -> str:
    return f"Chain has {timeout}s left! Log in and hit now!"


def format_chain_pace(timeout: int) -> str:
    return f"Chain pace is dropping. Hit within {timeout}s to keep it alive."


def format_landing_soon(seconds_left: int, destination: str) -> str:
    return f"Almost there, about {seconds_left}s left to {destination}. Get ready to buy/sell fast."


def format_arrived(destination: str) -> str:
    return (
        f"You just landed in {destination}. Grab your items, check prices, "
        "and plan your next flight before you waste time."
    )


__all__ = [
    "ALERT_CHANNEL_ID",
    "STOCK_ALERT_TITLE",
    "StockAlertContext",
    "TEST_BODY",
    "TEST_TITLE",
    "WAR_CHAIN_TITLE",
    "format_arrived",
    "format_chain_pace",
    "format_landing_soon",
    "format_stock_alert",
    "format_war_chain_warning",
]
