"""In-memory window store keyed by identifier."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Hashable, Iterator, List


@dataclass
class _Shard:
    lock: Lock = field(default_factory=Lock)
    records: Dict[Hashable, List[int]] = field(default_factory=dict)


class WindowStore:
    """Thread-safe mapping of identifier -> request timestamps in milliseconds.

    Keys are spread over a fixed number of shards, each guarded by its own
    lock, so requests for unrelated identifiers do not contend and a sweep
    never holds more than one shard at a time.
    """

    def __init__(self, shards: int = 16) -> None:
        if shards <= 0:
            raise ValueError("shards must be positive")
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, key: Hashable) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    @contextmanager
    def transaction(self, key: Hashable) -> Iterator[List[int]]:
        """Yield the live record for ``key`` while holding its shard lock."""

        shard = self._shard(key)
        with shard.lock:
            record = shard.records.setdefault(key, [])
            try:
                yield record
            finally:
                if not record:
                    shard.records.pop(key, None)

    def record(self, key: Hashable, now: int) -> List[int]:
        """Append ``now`` to the record for ``key`` and return a copy of it."""

        with self.transaction(key) as record:
            record.append(now)
            return list(record)

    def get(self, key: Hashable) -> List[int]:
        shard = self._shard(key)
        with shard.lock:
            return list(shard.records.get(key, ()))

    def delete(self, key: Hashable) -> bool:
        shard = self._shard(key)
        with shard.lock:
            return shard.records.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Delete every key matching ``predicate``; return how many went."""

        removed = 0
        for shard in self._shards:
            with shard.lock:
                doomed = [key for key in shard.records if predicate(key)]
                for key in doomed:
                    del shard.records[key]
                removed += len(doomed)
        return removed

    def prune(self, cutoff: int) -> int:
        """Drop timestamps at or before ``cutoff``; return evicted key count."""

        evicted = 0
        for shard in self._shards:
            with shard.lock:
                for key in list(shard.records):
                    kept = [ts for ts in shard.records[key] if ts > cutoff]
                    if kept:
                        shard.records[key] = kept
                    else:
                        del shard.records[key]
                        evicted += 1
        return evicted

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.records.clear()

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.records)
        return total

    def __contains__(self, key: Hashable) -> bool:
        shard = self._shard(key)
        with shard.lock:
            return key in shard.records
