from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserCredential(BaseModel):
    """One row of the `get_decrypted_users()` RPC.

    Fetched fresh on every invocation and never cached.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: int = Field(..., alias="id")
    decrypted_key: Optional[str] = None
    push_token: Optional[str] = None

    @property
    def has_key(self) -> bool:
        return bool(self.decrypted_key)


class StockAlert(BaseModel):
    """Last observed quantity of one item in one country, per user."""

    model_config = ConfigDict(extra="ignore")

    item_id: int
    country_code: str
    last_qty: int = 0


# Flags kept in `user_notifications`; True means "already notified for the
# current continuous occurrence of the condition".
FLAG_FIELDS = (
    "energy_full",
    "nerve_full",
    "happy_full",
    "life_full",
    "travel_landed",
    "travel_soon",
    "drugs_ready",
    "booster_ready",
    "medical_out",
    "jail_free",
    "edu_complete",
    "chain_warning",
    "test_notif",
)


class UserStatusFlags(BaseModel):
    """A `user_notifications` row."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    user_id: int
    energy_full: bool = False
    nerve_full: bool = False
    happy_full: bool = False
    life_full: bool = False
    travel_landed: bool = False
    travel_soon: bool = False
    drugs_ready: bool = False
    booster_ready: bool = False
    medical_out: bool = False
    jail_free: bool = False
    edu_complete: bool = False
    chain_warning: bool = False
    test_notif: bool = False
    stock_alerts: List[StockAlert] = Field(default_factory=list)

    @field_validator(*FLAG_FIELDS, mode="before")
    @classmethod
    def _null_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("stock_alerts", mode="before")
    @classmethod
    def _null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def get_flag(self, name: str) -> bool:
        if name not in FLAG_FIELDS:
            raise KeyError(name)
        return bool(getattr(self, name))


class TravelCache(BaseModel):
    """A `user_travel_status` row, written after every fresh API read."""

    model_config = ConfigDict(extra="ignore")

    user_id: int
    travel_state: Optional[str] = None
    travel_destination: Optional[str] = None
    travel_arrival: Optional[int] = None  # unix seconds
    status_state: Optional[str] = None
    status_until: Optional[int] = None

    def time_left(self, now: int) -> int:
        if self.travel_arrival and self.travel_arrival > now:
            return self.travel_arrival - now
        return 0


class ChainTarget(BaseModel):
    """A queued chain target; the row outlives us, this copy does not."""

    model_config = ConfigDict(extra="ignore")

    torn_id: int
    name: str = ""
    status: Optional[str] = None


class NotificationMessage(BaseModel):
    """A push message: built, batched, sent, discarded."""

    push_token: str
    title: str
    body: str
    sound: str = "default"
    priority: str = "high"
    channel_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "to": self.push_token,
            "title": self.title,
            "body": self.body,
            "sound": self.sound,
            "priority": self.priority,
        }
        if self.channel_id:
            out["channelId"] = self.channel_id
        return out
