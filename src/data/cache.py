"""TTL result cache keyed by deterministic position fingerprints."""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, MutableMapping, Protocol, TypeVar

from infra.locks import ReadWriteLock

T = TypeVar("T")
CacheResult = tuple[bool, T | None]

DEFAULT_TTL_SECONDS = 3600
SIGNIFICANT_DIGITS = 8


class _Fingerprintable(Protocol):
    asset: str
    quantity: float
    current_price: float
    debt_value: float
    liquidation_threshold: float


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    created_at: float
    value: T

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at < ttl_seconds


def _digits(value: float) -> str:
    return f"{value:.{SIGNIFICANT_DIGITS}g}"


def fingerprint(scenario_id: str, positions: Iterable[_Fingerprintable]) -> str:
    """SHA-256 over the scenario and each position, insensitive to sub-precision price jitter."""

    digest = hashlib.sha256(scenario_id.encode("utf-8"))
    for position in positions:
        parts = (
            position.asset,
            _digits(position.quantity),
            _digits(position.current_price),
            _digits(position.debt_value),
            _digits(position.liquidation_threshold),
        )
        digest.update(b"\x1f")
        digest.update("|".join(parts).encode("utf-8"))
    return digest.hexdigest()


class ResultCache(Generic[T]):
    """Thread-safe map of fingerprint to result; expired entries read as misses."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, enabled: bool = True) -> None:
        self._ttl_seconds = ttl_seconds
        self._enabled = enabled
        self._store: Dict[str, CacheEntry[T]] = {}
        self._lock = ReadWriteLock()

    def get(self, key: str) -> CacheResult[T]:
        if not self._enabled:
            return False, None
        with self._lock.read():
            entry = self._store.get(key)
        if entry is None or not entry.is_fresh(time.time(), self._ttl_seconds):
            return False, None
        return True, entry.value

    def put(self, key: str, value: T) -> T:
        if not self._enabled:
            return value
        entry = CacheEntry(created_at=time.time(), value=value)
        with self._lock.write():
            self._store[key] = entry
        return value

    def clear(self) -> None:
        with self._lock.write():
            self._store.clear()

    def stats(self) -> MutableMapping[str, Any]:
        with self._lock.read():
            return {
                "entry_count": len(self._store),
                "enabled": self._enabled,
                "ttl_seconds": self._ttl_seconds,
            }


__all__ = ["CacheEntry", "ResultCache", "fingerprint"]
