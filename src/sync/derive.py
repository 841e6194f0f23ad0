from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Mapping, Optional, Sequence, TypeVar


T = TypeVar("T")


def percent_change(old: Optional[float], new: float) -> float:
    """Percent delta from `old` to `new`, rounded to 2 decimals; 0 when there is no baseline."""
    if not old or old <= 0:
        return 0.0
    return round((new - old) / old * 100.0, 2)


def lowest_price(listings: Iterable[Mapping[str, object]]) -> Optional[int]:
    prices = [int(p) for p in (listing.get("price") for listing in listings) if isinstance(p, (int, float))]
    return min(prices) if prices else None


def chunked(rows: Sequence[T], size: int) -> Iterator[List[T]]:
    for i in range(0, len(rows), size):
        yield list(rows[i : i + size])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(ts: datetime) -> str:
    return ts.isoformat(timespec="seconds")


def from_unix(seconds: float) -> str:
    return iso(datetime.fromtimestamp(seconds, tz=timezone.utc))


def parse_iso(value: str) -> datetime:
    """Parse a PostgREST timestamp; naive values are taken as UTC."""
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


__all__ = ["chunked", "from_unix", "iso", "lowest_price", "parse_iso", "percent_change", "utc_now"]
