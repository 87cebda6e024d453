"""
Small helpers shared by the services.
"""
import time
from typing import Callable, Hashable, Iterable, List, TypeVar

T = TypeVar("T")


def now_millis() -> int:
    """Milliseconds since the epoch, used for request timestamps and sample seeds."""
    return int(time.time() * 1000)


def dedupe(items: Iterable[T], key: Callable[[T], Hashable]) -> List[T]:
    """Drop items whose key was already seen, keeping first occurrences in order."""
    seen = set()
    result: List[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        result.append(item)
    return result
