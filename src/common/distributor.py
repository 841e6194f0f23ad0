from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Sequence, TypeVar


C = TypeVar("C")
T = TypeVar("T")


@dataclass
class Lane(Generic[C, T]):
    """Work assigned to one credential."""

    credential: C
    items: List[T] = field(default_factory=list)


def distribute(items: Sequence[T], credentials: Sequence[C]) -> List[Lane[C, T]]:
    """Assign `items[i]` to `credentials[i % N]`, preserving order within each lane.

    Every credential gets a lane (possibly empty), so lane sizes differ by at
    most one. Failure history and per-key budgets are not considered.
    """
    if not credentials:
        raise ValueError("at least one credential is required")
    lanes: List[Lane[C, T]] = [Lane(credential=c) for c in credentials]
    n = len(lanes)
    for i, item in enumerate(items):
        lanes[i % n].items.append(item)
    return lanes


__all__ = ["Lane", "distribute"]
