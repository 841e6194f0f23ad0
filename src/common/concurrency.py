from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar


T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Outcome(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _capture(fn: Callable[[T], R], item: T) -> Outcome[T, R]:
    try:
        return Outcome(item=item, value=fn(item))
    except Exception as exc:  # collected per item
        return Outcome(item=item, error=exc)


def fan_out(
    fn: Callable[[T], R],
    items: Sequence[T],
    *,
    max_workers: Optional[int] = None,
) -> List[Outcome[T, R]]:
    """Run `fn` over `items` concurrently and wait for all of them.

    One worker per item unless `max_workers` says otherwise. Results come back
    in input order. Exceptions are captured per item.
    """
    if not items:
        return []
    workers = len(items) if max_workers is None else max(1, min(max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda it: _capture(fn, it), items))


__all__ = ["Outcome", "fan_out"]
